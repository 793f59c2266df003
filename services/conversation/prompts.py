"""Intent-specific prompt templates for conversational answers."""

import json

from shared.enums import Intent
from shared.models import SlideContext, Turn

SYSTEM_PREAMBLE = "You are an AI assistant helping users understand a presentation."

INTENT_INSTRUCTIONS: dict[Intent, str] = {
    Intent.GREETING: (
        "Respond with a friendly greeting and briefly introduce what you can help with regarding "
        "this presentation. Keep it warm but professional."
    ),
    Intent.QUESTION: (
        "Answer the user's question using ONLY the information from the provided slide context. "
        "If the information isn't available in the slides, politely say so and suggest what you can "
        "help with instead. Be comprehensive but concise."
    ),
    Intent.CLARIFICATION: (
        "Provide a clearer, more detailed explanation of the topic from your previous response. "
        "Use examples from the slide content when possible."
    ),
    Intent.SUMMARY: (
        "Provide a concise summary of the main points from the presentation slides. "
        "Structure it with bullet points or numbered list for clarity."
    ),
    Intent.NAVIGATION: (
        "Help the user navigate through the presentation. Mention relevant slide numbers and provide "
        "a brief overview of what they'll find on specific slides."
    ),
    Intent.FAREWELL: (
        "Respond with a polite farewell and offer to help again if needed. Keep it brief and friendly."
    ),
    Intent.UNKNOWN: (
        "The request is unclear. Ask the user to rephrase or to ask about specific topics from the "
        "presentation, and mention that you can help with explanations, summaries, or navigation "
        "through the slides."
    ),
}


def format_history(turns: list[Turn]) -> str:
    return "\n\n".join(f"User: {turn.user_input}\nAssistant: {turn.response_text}" for turn in turns)


def build_conversation_prompt(
    intent: Intent,
    user_input: str,
    slide_context: SlideContext,
    recent_turns: list[Turn],
) -> str:
    """Base context (slides, recent turns, input, intent) followed by the intent's instruction."""
    context_json = json.dumps(slide_context.model_dump(by_alias=True, exclude_none=True), indent=2)
    history_text = format_history(recent_turns) or "(none)"
    return (
        f"{SYSTEM_PREAMBLE}\n"
        f"Current slide context: {context_json}\n"
        f"Recent conversation:\n{history_text}\n\n"
        f'Current user input: "{user_input}"\n'
        f"Detected intent: {intent.value}\n\n"
        f"{INTENT_INSTRUCTIONS[intent]}"
    )
