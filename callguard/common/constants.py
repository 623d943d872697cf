"""Shared constants."""

# Replaces every sensitive text range in transcripts handed downstream
REDACTION_MARKER = "[REDACTED]"

# Media type of delivered recordings
AUDIO_MEDIA_TYPE = "audio/wav"

# Redis key pattern for per-call redaction locks
REDACTION_LOCK_KEY = "callguard:redaction_lock:call:{call_id}"
