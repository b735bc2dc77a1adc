"""Prompt templates for the sentiment and summary models.

Both prompts ask for a bare JSON object; parsing.py holds the matching
readers and their fallbacks.
"""

SENTIMENT_LABELS = ("positive", "neutral", "negative")

# ── Sentiment (Gemini) ─────────────────────────────────────

SENTIMENT_SYSTEM_INSTRUCTION = """\
You are a sentiment analysis expert specializing in developer tools and coding agent feedback.
Provide accurate, consistent sentiment classifications based on the content's overall tone and intent.
Always respond with valid JSON containing label, score, and summary fields."""

SENTIMENT_PROMPT = """\
Analyze the sentiment of this tweet about coding agents or AI development tools.

Tweet Content:
"{content}"{author_info}{language_info}

Classify the overall sentiment as one of: positive, neutral, or negative.

Guidelines:
- "positive": Expresses satisfaction, enthusiasm, praise, or constructive feedback
- "neutral": Factual statements, questions, or mixed feelings without clear positive/negative bias
- "negative": Criticism, frustration, complaints, or warnings without constructive intent

Respond with ONLY a JSON object in this exact format:
{{
  "label": "positive" | "neutral" | "negative",
  "score": <number between -1.0 (most negative) and 1.0 (most positive)>,
  "summary": "<brief 1-sentence explanation of why this sentiment was chosen>"
}}"""

# ── Summary (Ollama) ───────────────────────────────────────

SUMMARY_PROMPT = """\
Summarize the following article and extract key information.

Title: {title}
Content: {content}

Provide the response in the following JSON format:
{{
  "summary": "A concise 2-3 sentence summary",
  "keyPoints": ["Point 1", "Point 2", "Point 3"],
  "sentiment": "positive|neutral|negative",
  "topics": ["Topic 1", "Topic 2"]
}}"""

# Models have small context windows; article bodies are cut to this length
SUMMARY_CONTENT_LIMIT = 6000


def build_sentiment_prompt(
    content: str,
    author_handle: str | None = None,
    language: str | None = None,
) -> str:
    """Fill the sentiment template for one tweet."""
    return SENTIMENT_PROMPT.format(
        content=content,
        author_info=f"\nAuthor: @{author_handle}" if author_handle else "",
        language_info=f"\nLanguage: {language}" if language else "",
    )


def build_summary_prompt(content: str, title: str | None = None) -> str:
    """Fill the summary template for one article."""
    return SUMMARY_PROMPT.format(
        title=title or "Untitled",
        content=content[:SUMMARY_CONTENT_LIMIT],
    )
