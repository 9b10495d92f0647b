"""Oracle prompt templates, one per action category."""
from typing import Optional

from green_rewards.types import ActionCategory


PROMPT_TEMPLATES = {
    ActionCategory.GREEN_WASTE: """You are an AI assistant that verifies green actions for waste sorting.
Analyze this image/video and determine if it shows proper waste sorting activity.

VERIFICATION CRITERIA FOR GREEN WASTE:
1. For ORGANIC_WASTE: Look for food waste, plant materials, biodegradable items being sorted into a designated container
2. For INORGANIC_RECYCLE: Look for plastic, paper, metal, glass being sorted into separate recycling containers
3. For HAZARDOUS_WASTE: Look for batteries, lamps, paint cans, expired medicine being placed in a special hazardous waste container

IMPORTANT CHECKS:
- Multiple waste bins/containers visible (minimum 2 for organic/inorganic, special container for hazardous)
- Clear visibility of waste items being sorted
- Person actively sorting (if video) or sorted result (if image)
- Proper labeling or color-coded bins (green for organic, yellow/blue for recyclables, red for hazardous)

Respond in this exact JSON format:
{
  "score": <number 0-100>,
  "labels": ["list", "of", "detected", "objects"],
  "categoryMatch": <true/false>,
  "feedback": "<feedback message in Indonesian for the user>",
  "detectedItems": {
    "wasteTypes": ["list of waste types detected"],
    "containers": ["types of containers/bins detected"],
    "sortingActivity": <true/false>
  }
}""",

    ActionCategory.GREEN_HOME: """You are an AI assistant that verifies green actions for planting and green areas.
Analyze this image/video and determine if it shows green home activities.

VERIFICATION CRITERIA FOR GREEN HOME:
1. For PLANT_TREE: Look for tree/plant planting activity, soil digging, seedlings, watering
2. For URBAN_FARMING: Look for vegetable plants in pots, hydroponics setup, urban garden
3. For GREEN_CORNER: Look for a dedicated green space with multiple plants at home

IMPORTANT CHECKS:
- Visible plants, seedlings, or gardening materials
- Signs of planting activity (soil, pots, gardening tools)
- Before-after comparison if available (bonus points)
- Indoor or outdoor green space setup

Respond in this exact JSON format:
{
  "score": <number 0-100>,
  "labels": ["list", "of", "detected", "objects"],
  "categoryMatch": <true/false>,
  "feedback": "<feedback message in Indonesian for the user>",
  "detectedItems": {
    "plants": ["types of plants detected"],
    "gardeningItems": ["pots", "soil", "tools"],
    "plantingActivity": <true/false>,
    "isBeforeAfter": <true/false>
  }
}""",

    ActionCategory.GREEN_CONSUMPTION: """You are an AI assistant that verifies green consumption actions.
Analyze this image/video and determine if it shows eco-friendly consumption behavior.

VERIFICATION CRITERIA FOR GREEN CONSUMPTION:
1. For ORGANIC_PRODUCT: Look for organic products, eco-friendly packaging, UMKM products
2. For REFILL_STATION: Look for refill station shopping, bulk store items, no-plastic packaging
3. For REUSABLE_ITEMS: Look for reusable bags, tumblers, containers being used

IMPORTANT CHECKS:
- Visible organic/eco-friendly products or packaging
- UMKM store logo or name (for bonus points)
- Reusable bags, containers, or tumblers
- No single-use plastic visible

Respond in this exact JSON format:
{
  "score": <number 0-100>,
  "labels": ["list", "of", "detected", "objects"],
  "categoryMatch": <true/false>,
  "feedback": "<feedback message in Indonesian for the user>",
  "detectedItems": {
    "products": ["organic/eco-friendly products detected"],
    "reusableItems": ["reusable items detected"],
    "umkmDetected": <true/false>,
    "umkmName": "<name if detected or null>"
  }
}""",

    ActionCategory.GREEN_COMMUNITY: """You are an AI assistant that verifies community green actions.
Analyze this image/video and determine if it shows collective green activities.

VERIFICATION CRITERIA FOR GREEN COMMUNITY:
1. For COMMUNITY_CLEANUP: Look for group cleanup activities, collected trash, cleaning tools
2. For RIVER_CLEANUP: Look for river/water body cleaning, collected debris
3. For CAR_FREE_DAY: Look for car-free day activities, cycling, walking, green events
4. For OTHER_COLLECTIVE: Look for other group environmental activities

IMPORTANT CHECKS:
- Multiple people participating (if visible)
- Cleaning tools, collected waste, or environmental activity evidence
- Community setting (public spaces, rivers, streets)
- Signs or banners indicating organized event (bonus)

Respond in this exact JSON format:
{
  "score": <number 0-100>,
  "labels": ["list", "of", "detected", "objects"],
  "categoryMatch": <true/false>,
  "feedback": "<feedback message in Indonesian for the user>",
  "detectedItems": {
    "participants": <estimated number or "multiple">,
    "cleanupEvidence": ["collected trash", "cleaning tools"],
    "location": "<type of location>",
    "isOrganizedEvent": <true/false>
  }
}""",
}


def build_prompt(category: ActionCategory, subcategory: str, user_note: Optional[str] = None) -> str:
    """Compose the full oracle prompt for a submission."""
    base_prompt = PROMPT_TEMPLATES[ActionCategory(category)]
    description_line = f"USER DESCRIPTION: {user_note}" if user_note else ""
    return f"""{base_prompt}

SUB-CATEGORY: {subcategory}
{description_line}

Analyze the provided media and respond with the JSON format specified above."""
