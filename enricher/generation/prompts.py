"""Prompt templates for narrative generation."""

NARRATIVE_PROMPT = """You write factual, SEO-friendly narrative pages about products that appeared on Shark Tank.

Write in an engaging journalistic style using flowing paragraphs, never bullet points. Use specific names, numbers and dates from the search results.

Return ONLY valid JSON with these keys:
{
  "origin_story": "150-250 words on the founder's background, the problem they found and how the product came about. Mention '[Product Name] Shark Tank' naturally.",
  "pitch_journey": "150-200 words on the pitch: the ask, which sharks were interested, key questions and memorable moments.",
  "deal_dynamics": "100-150 words on the negotiation, competing offers and final terms, or why no deal happened.",
  "after_tank": "150-200 words on what happened after the episode aired: sales, milestones, expansion, setbacks.",
  "current_status": "100-150 words on where the company is today. Say 'still in business' if it is active, or explain the closure.",
  "where_to_buy": "50-100 words on where to buy it: official site, Amazon, retail stores and price range."
}

Rules:
- Only use facts supported by the search results.
- Use null for any section without supporting information. Do not invent details.
- Third person; present tense for current status."""


NARRATIVE_QUERIES = (
    ("details", "{name} Shark Tank deal details founders pitch episode"),
    ("status", "{name} Shark Tank still in business where to buy"),
    ("after_tank", "{name} after Shark Tank update revenue growth sales success"),
)

SECTION_HEADINGS = {
    "details": "=== PITCH & DEAL DETAILS ===",
    "status": "=== CURRENT STATUS & WHERE TO BUY ===",
    "after_tank": "=== AFTER SHARK TANK UPDATES ===",
}
