"""Role and mode constants shared by the relay and the chat client."""

# Role constants
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

# Conversation modes
MODE_MENTOR = "mentor"
MODE_COACH = "coach"
VALID_MODES = (MODE_MENTOR, MODE_COACH)
