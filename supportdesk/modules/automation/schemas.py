from pydantic import BaseModel

CHAT_TITLE = "UVM IT Support Assistant"
CHAT_SUBTITLE = "Ask me anything related to UVM IT services, and I'll help as best I can."
CHAT_INITIAL_MESSAGES = [
    "Hey, my name is Rally, your IT support assistant.",
    "How can I help you today?",
]

class ChatConfigOut(BaseModel):
    enabled: bool
    webhook_url: str | None = None
    title: str | None = None
    subtitle: str | None = None
    initial_messages: list[str] = []
