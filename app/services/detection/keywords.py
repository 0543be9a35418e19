"""Keyword lists and thresholds for call status detection."""

# Timing thresholds (milliseconds)
DEAD_AIR_THRESHOLD_MS = 6000
NO_ANSWER_THRESHOLD_MS = 30000

# End-reason substrings, checked in order
END_REASON_PATTERNS = [
    ("voicemail", "VOICEMAIL"),
    ("did-not-answer", "NO_ANSWER"),
    ("no-answer", "NO_ANSWER"),
    ("disconnect", "DISCONNECTED"),
    ("websocket", "DISCONNECTED"),
    ("busy", "BUSY"),
]

# Phrases heard on answering machines
VOICEMAIL_KEYWORDS = [
    "voicemail",
    "leave a message",
    "not available",
    "mailbox",
    "beep",
    "after the tone",
    "unable to take your call",
    "please leave",
    "record your message",
]

# Phrases heard on automated phone menus
IVR_KEYWORDS = [
    "press 1",
    "press 2",
    "dial",
    "extension",
    "directory",
    "automated",
    "for sales",
    "for support",
    "main menu",
    "options",
]

# Literal phrases transcribers emit for fax/modem tones
FAX_TONE_PHRASES = [
    "beep beep beep",
    "tone",
]

# A transcript made only of this many non-letters is line noise
FAX_NOISE_MIN_LENGTH = 20
