"""
Prompt builders for every AI step of the pipeline.

Evaluator and writer prompts can be replaced at run time through the
``ai_prompt_content_evaluator`` and ``ai_prompt_newsletter_writer`` app
settings; those templates use ``{{title}}``, ``{{description}}``,
``{{content}}`` and ``{{url}}`` placeholders.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

EVALUATOR_SETTING_KEY = "ai_prompt_content_evaluator"
WRITER_SETTING_KEY = "ai_prompt_newsletter_writer"


def _excerpt(text: str, limit: int, missing: str) -> str:
    if not text:
        return missing
    return text[:limit] + "..."


def render_template(template: str, values: Dict[str, str]) -> str:
    """Fill ``{{name}}`` placeholders in a stored prompt template."""
    for name, value in values.items():
        template = template.replace("{{" + name + "}}", value)
    return template


def content_evaluator(
    title: str,
    description: str,
    content: str = "",
    region: str = "St. Cloud, Minnesota",
    communities: Optional[List[str]] = None,
    template: Optional[str] = None,
) -> str:
    description_text = description or "No description available"
    content_text = _excerpt(content, 1000, "No content available")
    if template:
        return render_template(
            template,
            {"title": title, "description": description_text, "content": content_text},
        )

    nearby = ", ".join(communities or []) or region
    return f"""
You are evaluating a news article for inclusion in a local {region} newsletter. Rate it on three dimensions.

INTEREST LEVEL (1-20): How intriguing, surprising, or engaging is this story?
HIGH SCORING: Unexpected developments, human interest stories, unique events, broad appeal, fun/entertaining
LOW SCORING: Routine announcements, technical/administrative content, repetitive topics, purely promotional, very short content

LOCAL RELEVANCE (1-10): How directly relevant is this to residents of the area?
HIGH SCORING: News in {nearby}, county government decisions, local business changes, school district news, local infrastructure, community events
LOW SCORING: State/national news without local angle, events far from the area, generic content

COMMUNITY IMPACT (1-10): How much does this affect local residents' daily lives or community?
HIGH SCORING: New services or amenities, policy changes affecting residents, public safety information, economic development, community resources
LOW SCORING: Individual achievements with limited community effect, internal organizational matters, entertainment without broader impact

BLANK RATING CONDITIONS: Leave all fields blank (null) if:
- Description contains 10 words or fewer
- Post is about weather happening today/tomorrow
- Post mentions events happening "today", "tonight", or "this evening"
- Post is about lost, missing, or found pets
- Post is about incidents currently happening, ongoing emergencies, or breaking news that will be outdated by tomorrow

Article Title: {title}
Article Description: {description_text}
Article Content: {content_text}

IMPORTANT: You must respond with ONLY valid JSON. Do not include any text before or after the JSON.

{{
  "interest_level": <number 1-20>,
  "local_relevance": <number 1-10>,
  "community_impact": <number 1-10>,
  "reasoning": "<detailed explanation of your scoring>"
}}"""


def topic_deduper(posts: List[Dict[str, str]]) -> str:
    listing = "\n\n".join(
        f"{i}. {post['title']}\n   {post.get('description') or 'No description'}"
        for i, post in enumerate(posts, start=1)
    )
    return f"""
You are identifying duplicate stories from multiple news sources. Review these articles and group them by topic if they cover the same story. For each group, select the article with the most comprehensive content.

Articles to analyze:
{listing}

Respond with valid JSON in this exact format, using the article numbers shown above:
{{
  "groups": [
    {{
      "topic_signature": "<brief topic description>",
      "primary_article_index": <number>,
      "duplicate_indices": [<array of numbers>],
      "similarity_explanation": "<why these are duplicates>"
    }}
  ],
  "unique_articles": [<array of article numbers that are unique>]
}}"""


def newsletter_writer(
    title: str,
    description: str,
    content: str = "",
    source_url: str = "",
    template: Optional[str] = None,
    feedback: str = "",
) -> str:
    description_text = description or "No description available"
    content_text = _excerpt(content, 1500, "No additional content")
    if template:
        prompt = render_template(
            template,
            {
                "title": title,
                "description": description_text,
                "content": content_text,
                "url": source_url,
            },
        )
    else:
        prompt = f"""
CRITICAL: You are writing a news article that MUST follow strict content rules. Violations will result in rejection.

Original Source Post:
Title: {title}
Description: {description_text}
Content: {content_text}

MANDATORY STRICT CONTENT RULES:
1. Articles must be COMPLETELY REWRITTEN and summarized; similar phrasing is acceptable but NO exact copying
2. Use ONLY information contained in the source post above
3. DO NOT add numbers, dates, quotes, or details not explicitly stated in the original
4. NEVER use 'today', 'tomorrow' or 'yesterday'; use the day of the week if a date reference is needed
5. NO emojis, hashtags (#), or URLs anywhere in headlines or article content
6. Stick to facts only, with NO editorial commentary, opinions, or speculation
7. Write from a THIRD-PARTY PERSPECTIVE; never use "we", "our", or "us" unless referring to the community as a whole

HEADLINE REQUIREMENTS:
- NEVER reuse or slightly reword the original title
- Create a completely new, engaging headline
- Use powerful verbs
- NO colons (:) in headlines
- NO emojis

ARTICLE REQUIREMENTS:
- Length: EXACTLY 40-75 words
- Structure: One concise paragraph only
- Style: Informative, engaging, locally relevant

Respond with valid JSON in this exact format:
{{
  "headline": "<completely new engaging headline>",
  "content": "<40-75 word completely rewritten article>",
  "word_count": <exact word count>
}}"""

    if feedback:
        prompt += f"\n\nYOUR PREVIOUS ATTEMPT WAS REJECTED: {feedback}\nFix these problems in this attempt."
    return prompt


def fact_checker(newsletter_content: str, original_content: str) -> str:
    return f"""
CRITICAL FACT-CHECK: Verify this newsletter article follows strict content rules and contains no violations.

Newsletter Article:
{newsletter_content}

Original Source Material:
{original_content[:2000]}

VIOLATIONS TO CHECK FOR:
1. EXACT COPIED TEXT: Direct word-for-word copying from source
2. ADDED INFORMATION: Any facts, numbers, dates, quotes not in original source
3. PROHIBITED WORDS: 'today', 'tomorrow', 'yesterday' instead of specific days
4. FORMATTING VIOLATIONS: Any emojis, hashtags (#), or URLs
5. PERSPECTIVE VIOLATIONS: "we", "our", "us" unless referring to the community as a whole
6. EDITORIAL CONTENT: Opinions, speculation, or commentary not in source
7. MODIFIED ORIGINAL TITLE: Headlines that are just slightly reworded versions of the original

Score ACCURACY, TIMELINESS and INTENT ALIGNMENT from 1 to 10 each, starting at 10 and subtracting for every violation found.

TOTAL SCORE = accuracy + timeliness + intent (3-30 range)
PASSING THRESHOLD: 20/30 minimum

Respond with valid JSON in this exact format:
{{
  "score": <number 3-30>,
  "details": "<detailed list of all violations found or 'none'>",
  "passed": <boolean true if score >= 20, false otherwise>
}}"""


def subject_line(headline: str, content: str, max_length: int = 35, now: Optional[datetime] = None) -> str:
    """Subject prompt for the top article, stamped so each call asks for a new variation."""
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return f"""
Craft a front-page newspaper headline for the next-day edition based on this article.

Top article:
{headline}
{content[:200]}

HARD RULES:
- At most {max_length} characters (count every space and punctuation)
- Title Case; avoid ALL-CAPS words
- Omit the year and relative dates like today or tomorrow
- No em dashes
- No colons (:) or other punctuation that splits the headline into two parts
- Return only the headline text, nothing else (no emoji, it is added automatically)

IMPACT CHECKLIST:
- Lead with a power verb
- Include the place name if it adds punch
- Every word earns its spot

Respond with ONLY the headline text. No JSON, no quotes, no extra formatting.

Generation timestamp: {stamp} - Create a fresh, unique headline variation."""
