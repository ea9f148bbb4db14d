"""
Prompts for the nutrition extraction model.
PAGE_EXTRACTION_PROMPT drives per-page (and whole-document) PDF extraction,
CHUNK_EXTRACTION_PROMPT drives plain-text chunk extraction.
Placeholders are filled with str.format, so literal braces are doubled.
"""

ITEM_SCHEMA = """{{
  "name": "string, exact item name as shown in the document",
  "category": "string",
  "servingSize": "string or null, e.g. '1 sandwich (215g)'",
  "calories": "integer, total kcal",
  "totalFatG": "number or null",
  "saturatedFatG": "number or null",
  "transFatG": "number or null",
  "cholesterolMg": "number or null",
  "sodiumMg": "number or null",
  "totalCarbsG": "number or null",
  "dietaryFiberG": "number or null",
  "sugarsG": "number or null",
  "proteinG": "number or null",
  "confidence": "high | medium | low",
  "notes": "string or null, any ambiguity you noticed"
}}"""

EXTRACTION_RULES = """## Rules

1. Extract EVERY distinct menu item. Do not skip items.
2. If a value is not visible or unclear, set it to null. Do NOT guess or calculate missing values.
3. Calories is the most critical field. If you cannot determine calories, set confidence to "low" and explain in notes.
4. Items with size variants (Small, Medium, Large) become separate entries named like "French Fries (Small)".
5. Extract combo/meal entries only when the document gives distinct nutrition data for them.
6. Do not include section headers, footnotes, or non-food text as items.
7. A 0 (e.g. for trans fat) is valid data, not missing data. "—" or "N/A" means null.
8. Round decimal values to 1 decimal place.
9. Prefer these categories when they fit: Burgers, Chicken, Sandwiches, Salads, Sides, Drinks,
   Desserts, Breakfast, Wraps, Tacos, Bowls, Kids Meals, Sauces & Dressings, Snacks."""

PAGE_EXTRACTION_PROMPT = """You are extracting nutrition data from {scope} of a restaurant nutrition PDF.

Restaurant: {restaurant_name}
Categories found so far: {existing_categories}
Items found so far: {items_so_far}

## Instructions

- Extract ALL menu items visible in the attached document.
- Use the existing categories when they fit so naming stays consistent; create new ones only when needed.
- Items already found elsewhere (e.g. repeated in a table of contents) do not need to be extracted again.
- If there are no menu items (cover page, legal text, footnotes), return an empty array: []

""" + EXTRACTION_RULES + """

## Output format

Return ONLY a JSON array. No markdown, no code fences, no explanation. Each element:
""" + ITEM_SCHEMA + """

Return [] if there are no menu items."""

CHUNK_EXTRACTION_PROMPT = """You are extracting nutrition data from part {chunk_number} of the text of a restaurant nutrition PDF.
The text was cut at an arbitrary point, so a table may continue from the previous part.

Restaurant: {restaurant_name}
Categories found so far: {existing_categories}
Items found so far: {items_so_far}

""" + EXTRACTION_RULES + """

## Output format

Return ONLY a JSON array. No markdown, no code fences, no explanation. Each element:
""" + ITEM_SCHEMA + """

Return [] if there are no menu items in this part.

TEXT:
{text}"""
