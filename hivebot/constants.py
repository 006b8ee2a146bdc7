from __future__ import annotations

BOT_NAME = "WDAI Hive"

CATEGORIES = [
    {"id": "prompt_engineering", "name": "Prompt Engineering", "emoji": "🎯"},
    {"id": "code_generation", "name": "Code Generation", "emoji": "💻"},
    {"id": "content_creation", "name": "Content Creation", "emoji": "✍️"},
    {"id": "data_analysis", "name": "Data Analysis", "emoji": "📊"},
    {"id": "automation", "name": "Automation", "emoji": "⚙️"},
    {"id": "research", "name": "Research & Learning", "emoji": "🔬"},
    {"id": "prototyping", "name": "Prototyping", "emoji": "🚀"},
    {"id": "collaboration", "name": "AI Collaboration", "emoji": "🤝"},
    {"id": "other", "name": "Other", "emoji": "✨"},
]

TOOLS = [
    {"id": "chatgpt", "name": "ChatGPT", "group": "general", "emoji": "🤖"},
    {"id": "claude", "name": "Claude", "group": "general", "emoji": "🧠"},
    {"id": "github_copilot", "name": "GitHub Copilot", "group": "coding", "emoji": "👨‍💻"},
    {"id": "cursor", "name": "Cursor", "group": "coding", "emoji": "⌨️"},
    {"id": "midjourney", "name": "Midjourney", "group": "image", "emoji": "🎨"},
    {"id": "dalle", "name": "DALL-E", "group": "image", "emoji": "🖼️"},
    {"id": "stable_diffusion", "name": "Stable Diffusion", "group": "image", "emoji": "🎭"},
    {"id": "notion_ai", "name": "Notion AI", "group": "productivity", "emoji": "📝"},
    {"id": "jupyter", "name": "Jupyter + AI", "group": "data", "emoji": "📊"},
    {"id": "langchain", "name": "LangChain", "group": "development", "emoji": "🔗"},
    {"id": "openai_api", "name": "OpenAI API", "group": "development", "emoji": "🔌"},
    {"id": "anthropic_api", "name": "Anthropic API", "group": "development", "emoji": "🔌"},
    {"id": "huggingface", "name": "Hugging Face", "group": "development", "emoji": "🤗"},
    {"id": "zapier", "name": "Zapier AI", "group": "automation", "emoji": "⚡"},
    {"id": "make", "name": "Make (Integromat)", "group": "automation", "emoji": "🔧"},
    {"id": "other_tool", "name": "Other Tool", "group": "other", "emoji": "🛠️"},
]

CATEGORY_IDS = [c["id"] for c in CATEGORIES]
TOOL_IDS = [t["id"] for t in TOOLS]

CATEGORY_DISPLAY = {c["id"]: f"{c['emoji']} {c['name']}" for c in CATEGORIES}
TOOL_DISPLAY = {t["id"]: f"{t['emoji']} {t['name']}" for t in TOOLS}

# Callback data. Telegram limits callback_data to 64 bytes.
CB_YES = "checkin:yes"
CB_NO = "checkin:no"
CB_START = "checkin:start"
CB_CATEGORY_PREFIX = "cat:"
CB_CATEGORIES_NEXT = "cat_next"
CB_TOOL_PREFIX = "tool:"
CB_TOOLS_NEXT = "tool_next"
CB_SUBMIT = "details:submit"
CB_SKIP = "details:skip"

MESSAGE_TEMPLATES = {
    "weekly_checkin": {
        "title": "🐝 WDAI Hive Weekly Check-in",
        "description": "It's time for your weekly AI check-in. Have you played with AI this week?",
        "ai_definition": (
            "Playing with AI means experimenting with AI tools, building something using AI, "
            "exploring new AI features, or learning about AI concepts. It could be as simple as "
            "trying a new prompt or as complex as building an AI-powered application!"
        ),
        "yes_button": "Yes, I played with AI! 🎉",
        "no_button": "Not this week 😔",
    },
    "category_selection": {
        "title": "What did you work on?",
        "description": "Great! Let's capture what you explored. Tap every category that applies, then press Next.",
        "next_button": "Next ➡️",
        "empty": "Please select at least one category before continuing.",
    },
    "tool_selection": {
        "title": "Which tools did you use?",
        "description": (
            "Which AI tools or platforms did you experiment with? You can select several. "
            "Used something not listed? Type its name as a message, then press Next."
        ),
        "next_button": "Next ➡️",
        "empty": "Please select at least one tool before continuing.",
        "other_noted": "Noted \"{tool}\" as another tool. Press Next when you're done.",
    },
    "custom_details": {
        "title": "Tell us more! (Optional)",
        "description": (
            "Feel free to share what you built, learned, or discovered. Type it as a message, "
            "then press Submit, or press Skip. This helps inspire others in the community!"
        ),
        "details_noted": "Got it! Press Submit to save your check-in, or send another message to replace it.",
        "submit_button": "Submit 🚀",
        "skip_button": "Skip",
    },
    "thank_you": {
        "description": "Your AI adventure has been recorded in the WDAI Hive. Keep exploring and inspiring others!",
    },
    "no_response": {
        "description": (
            "That's totally fine! We'll check in again next week. Feel free to reach out if you have "
            "any questions about AI tools or want to explore something specific."
        ),
    },
    "reminder": {
        "description": (
            "Just a friendly reminder that we haven't heard from you yet this week about your "
            "AI adventures! 🐝 Even if you didn't experiment with AI, we'd love to hear from you."
        ),
        "start_button": "Take Check-in Now 🚀",
    },
}

EXPIRED_TEXT = "Your check-in session has expired. Use /checkin to start a new check-in."
ALREADY_ACTIVE_TEXT = (
    "You already have a check-in in progress. Use the buttons above, or /checkin to start over."
)
WRONG_STEP_TEXT = "That button belongs to an earlier step. Please continue with the latest message."
GENERIC_ERROR_TEXT = "Sorry, I encountered an error. Please try again or contact an admin if the problem persists."
SAVE_ERROR_TEXT = "Sorry, I couldn't save your answer. Please press the button again in a moment."
OPTED_OUT_TEXT = "You've opted out of weekly check-ins. Send \"opt in\" if you'd like to receive them again."
OPT_OUT_TEXT = (
    "I've noted your opt-out request. You won't receive weekly check-ins anymore. "
    "Send \"opt in\" any time to come back."
)
OPT_IN_TEXT = "Great! I've opted you back in to weekly check-ins. You'll receive your next check-in on schedule."
ADMIN_ONLY_TEXT = "This command is available to admins only."

HELP_TEXT = (
    f"🐝 {BOT_NAME} Help\n\n"
    "I help track AI experimentation in our community with a short weekly check-in.\n\n"
    "Commands:\n"
    "/checkin - start (or restart) this week's check-in\n"
    "/optout - stop receiving weekly check-ins\n"
    "/optin - receive weekly check-ins again\n"
    "/help - show this message\n\n"
    "How it works:\n"
    "1) Every week I ask whether you played with AI\n"
    "2) If yes, you pick categories and tools\n"
    "3) Optionally share what you built or learned\n\n"
    "Privacy: responses are stored securely, admins see aggregated analytics, "
    "and you can opt out anytime."
)
