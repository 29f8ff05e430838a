"""
Core Application Constants
Defines interview timing, upload and media configuration defaults.
"""

# Question Timer
MAX_ANSWER_SECONDS = 180  # Recording cap per question (3 minutes)
MIN_ANSWER_SECONDS = 5  # Minimum answer length before a manual stop is accepted
FINISH_VISIBLE_AFTER_SECONDS = 10  # Stop control becomes visible after this
READING_WORDS_PER_SECOND = 3.0
READING_BUFFER_SECONDS = 5
FALLBACK_COUNTDOWN_SECONDS = 30
ADVANCE_DELAY_SECONDS = 0.8

# Global Deadline
SECONDS_PER_QUESTION = 300

# Upload Pipeline
MAX_UPLOAD_ATTEMPTS = 3
BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 5000
LAST_UPLOAD_TIMEOUT_SECONDS = 5.0
FINAL_WAIT_SECONDS = 10.0
FINAL_SETTLE_SECONDS = 2.0

# Recorder
RECORDER_TIMESLICE_MS = 1000

# Container/codec preference, first supported one wins
MIME_TYPE_PREFERENCES = (
    "video/webm;codecs=vp8,opus",
    "video/webm",
    "video/mp4",
)

# Content types accepted by the blob transfer endpoint
ALLOWED_CONTENT_TYPES = frozenset({
    "video/webm",
    "video/mp4",
    "video/webm;codecs=vp8,opus",
    "video/quicktime",
})

# File extension used when filing a recording under its question index
CONTENT_TYPE_EXTENSIONS = {
    "video/webm": "webm",
    "video/mp4": "mp4",
    "video/quicktime": "mov",
}

# Camera request (ideal 720p, front-facing) plus microphone
DEFAULT_VIDEO_CONSTRAINTS = {
    "width": {"ideal": 1280},
    "height": {"ideal": 720},
    "facingMode": "user",
}

# Overall score mapping: 1.0 + average(0-2 score) * 4.25 -> 1..10
OVERALL_SCORE_BASE = 1.0
OVERALL_SCORE_MULTIPLIER = 4.25

# Max wait for the recorder to deliver its final fragment after a stop
RECORDER_FINALIZE_TIMEOUT_SECONDS = 10.0
