"""Prompt builders for story text and illustrations."""

from bedtime.models.book import AgeBand, Tone

BASE_STYLE = """
Style: Warm, friendly children's book illustration
Art direction: Soft watercolor meets digital art
Color palette: Bright, cheerful colors with warm undertones
Lighting: Soft, golden hour glow
Character rendering: Friendly, approachable features with expressive eyes
Background: Dreamy, slightly blurred, storybook atmosphere
Quality: Professional children's book illustration quality, high detail
""".strip()

NO_TEXT_RULE = (
    "IMPORTANT: NO TEXT, NO LETTERS, NO WORDS, NO TITLE, NO SIGNATURES. "
    "Pure illustration only."
)

AGE_GUIDELINES: dict[AgeBand, str] = {
    AgeBand.AGES_3_4: (
        "Use very simple words (2-3 syllables max), short sentences (5-8 words), familiar "
        "everyday concepts. Repetition is good. Focus on colors, animals, and simple actions."
    ),
    AgeBand.AGES_5_6: (
        "Use simple vocabulary with occasional new words, sentences up to 10 words, introduce "
        "mild challenges and small adventures. Include emotions and friendships."
    ),
    AgeBand.AGES_7_9: (
        "Use richer vocabulary, longer descriptive sentences, more plot complexity. Include "
        "problem-solving, courage, and character growth."
    ),
}

TONE_DESCRIPTIONS: dict[Tone, str] = {
    Tone.GENTLE: (
        "Warm, soft, and comforting. Use soothing language that creates a safe, cozy "
        "atmosphere. Perfect for bedtime."
    ),
    Tone.FUNNY: (
        "Playful, clever, and witty, in a Pixar-style way. Absolutely no bathroom humor or "
        "crude jokes."
    ),
    Tone.BRAVE: (
        "Adventurous and empowering. The child faces challenges with courage. Use exciting "
        "action words and triumphant moments."
    ),
}

TONE_MOODS: dict[Tone, str] = {
    Tone.GENTLE: "Serene, cozy, bedtime warmth. Soft pastels, calm expressions, peaceful atmosphere.",
    Tone.FUNNY: (
        "Playful, energetic, silly expressions. Bright saturated colors, dynamic poses, "
        "whimsical details."
    ),
    Tone.BRAVE: (
        "Bold, adventurous, heroic poses. Strong colors, dramatic lighting, empowering "
        "composition."
    ),
}


def character_sheet_prompt(child_name: str) -> str:
    return f"""
Create a children's book character reference sheet based on this child's photo.

CHARACTER: {child_name}

REQUIREMENTS:
- Transform the child into an illustrated storybook character
- Keep recognizable features: face shape, hair color/style, skin tone, eye color
- Style: Friendly, warm, Pixar/Disney-inspired 2D illustration
- Show: Front-facing portrait with a happy expression
- Background: Clean white or very light background
- Wholesome and age-appropriate

{BASE_STYLE}

{NO_TEXT_RULE}
""".strip()


def story_system_prompt(age_band: AgeBand) -> str:
    return f"""You are a beloved children's book author who writes engaging, age-appropriate stories that children love.

For ages {age_band.value}:
{AGE_GUIDELINES[age_band]}

Your writing style:
- Make the child the HERO of their own story
- Use their name naturally throughout the narrative
- Create vivid, imaginable scenes
- End each page with a hook that makes them want more

CONTENT SAFETY - never include bathroom humor, scary villains, violence, bullying, or anything crude.

IMPORTANT: You must respond ONLY with valid JSON. No markdown, no explanation, just the JSON object."""


def story_user_prompt(
    child_name: str,
    age_band: AgeBand,
    interests: list[str],
    tone: Tone,
    moral_lesson: str | None = None,
) -> str:
    primary_interest = interests[0] if interests else "adventure"
    lesson_line = f"- Lesson to weave in: {moral_lesson}\n" if moral_lesson else ""
    return f"""Write the FIRST PAGE of a personalized children's storybook.

CHILD DETAILS:
- Name: {child_name}
- Age: {age_band.value} years old
- Interests: {", ".join(interests)}
- Preferred tone: {tone.value} ({TONE_DESCRIPTIONS[tone]})
{lesson_line}
REQUIREMENTS:
1. Create a short, catchy BOOK TITLE (2-6 words) that includes {child_name}'s name and relates to {primary_interest}
2. Write 1-3 sentences ONLY (this is just page 1 of a longer book)
3. Introduce {child_name} as the main character doing something exciting
4. Feature their primary interest ({primary_interest}) prominently
5. End with something that makes the reader want to turn the page
6. Also describe the scene for an illustrator

RESPOND WITH THIS EXACT JSON FORMAT:
{{
  "title": "A catchy book title including the child's name",
  "page1Text": "The story text for page 1",
  "illustrationPrompt": "A detailed visual description of the page 1 scene"
}}"""


def cover_prompt(age_band: AgeBand, interests: list[str], tone: Tone) -> str:
    primary = interests[0] if interests else "adventure"
    secondary = " and ".join(interests[1:])
    theme = f"{primary}, with elements of {secondary}" if secondary else primary
    return f"""
Create a children's storybook COVER illustration featuring a {age_band.value} year old child.

SCENE:
- The child from the reference image as the central hero figure
- Theme: {theme}
- Mood: {TONE_MOODS[tone]}
- The child looks confident, excited, ready for adventure

{BASE_STYLE}

CRITICAL: The character MUST match the provided reference sheet exactly - same face, hair, features.
{NO_TEXT_RULE} Do not render the book title or any lettering anywhere in the image.
""".strip()


def page_illustration_prompt(
    page_number: int, story_text: str, tone: Tone, scene_description: str | None = None
) -> str:
    scene = f"\nSCENE DESCRIPTION:\n{scene_description}\n" if scene_description else ""
    return f"""
Create a children's book page illustration.

PAGE: {page_number}

STORY CONTEXT:
"{story_text}"
{scene}
REQUIREMENTS:
- The main child character MUST match the provided reference sheet exactly
- Illustrate the story text naturally, in the mood of a {tone.value} bedtime story
- Leave some margin space for text overlay
- Soft, warm lighting suitable for bedtime reading

{BASE_STYLE}

{NO_TEXT_RULE}
""".strip()
