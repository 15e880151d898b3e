"""
User-facing message texts sent through the chat transport.
"""

START_INTRO = "Send me a SoundCloud link and I will send the track back."
USER_ID_MISSING = "Unable to verify user id."
ALREADY_AUTHORIZED = "You are already authorized, just send a SoundCloud link."
PROMPT_PASSWORD = "Password please."
PASSWORD_ACCEPTED = "Password accepted."
PASSWORD_REJECTED = "Wrong password."
AUTH_LIMIT_REACHED = "Sorry, no more seats are available right now."
NOT_ADMIN = "This command is reserved for admins."
BROADCAST_USAGE = "usage: /broadcast <message>"
BROADCAST_NO_USERS = "There are no authorized users to broadcast to."
CONVERSION_IN_PROGRESS = "Looking for this track on SoundCloud..."
CONVERSION_NOT_FOUND = "Could not find this track on SoundCloud."
INVALID_LINK = "Please send a valid SoundCloud link."
DOWNLOAD_PREP = "Fetching your track..."
FILE_TOO_LARGE = "This track is too large to be sent."
PREMIUM_RATE_LIMITED = (
    "SoundCloud is rate-limiting premium requests right now (30-60 min cooldown). "
    "Continuing without credentials: quality is capped at AAC ~192 kbps for now."
)
GENERIC_ERROR = "Could not fetch this track, check your link."
QUEUE_FULL = "Too many requests right now, try again in a minute."
MISSING_AUDIO_FILE = "SoundCloud returned no downloadable audio for this link."
OPUS_ONLY = "Only an Opus stream is available for this track, which is not supported."
PLAYLIST_NO_ENTRIES = "This playlist has no downloadable entries."
PLAYLIST_STOPPED = "Playlist stopped."
PLAYLIST_DONE = "Playlist finished."
CAPTION_DEFAULT = "SoundCloud track"
CAPTION_FALLBACK = "Untitled track"
SESSION_EXPIRED = "Session expired"
NOT_YOUR_PLAYLIST = "This is not your playlist."
CONTINUE_LABEL = "Continue"
STOP_LABEL = "Stop"


def download_count(count: int) -> str:
    plural = "" if count == 1 else "s"
    return f"{count} track{plural} downloaded so far."


def broadcast_result(sent: int, failed: int) -> str:
    fail_line = f", {failed} failed" if failed else ""
    return f"Sent to {sent} user{'' if sent == 1 else 's'}{fail_line}."


def admin_error_notice(text: str) -> str:
    return f"⚠️ soundrelay error:\n{text}"


def user_id_response(user_id: int) -> str:
    return f"Your user id: {user_id}"


def playlist_detected(total: int, chunk_size: int, max_items: int) -> str:
    return (
        f"Playlist detected: {total} tracks (max {max_items}). "
        f"Sending them in batches of {chunk_size}."
    )


def playlist_chunk_prompt(sent: int, total: int, chunk_size: int) -> str:
    return f"{sent}/{total} tracks sent. Continue with the next {chunk_size}?"


def quality_line(text: str) -> str:
    return f"Quality: {text}"


def bitrate_drop_warning(track: str, measured: int, source: int) -> str:
    return (
        f"⚠️ {track}: measured {measured} kbps while the source advertises "
        f"{source} kbps."
    )


def low_bitrate_warning(track: str, measured: int, threshold: int) -> str:
    return f"⚠️ {track}: only {measured} kbps (below {threshold} kbps)."
