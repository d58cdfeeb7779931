MAX_MEDIA_BYTES = 25 * 1024 * 1024     # 25 MB (recorded clips and snapshots)
MAX_REQUEST_BYTES = 30 * 1024 * 1024   # 30 MB (media + multipart overhead)
CHUNK_SIZE = 1024 * 1024

WORDS_PER_MINUTE = 180
GUEST_SAVE_LIMIT = 3
DURATION_PRESETS = ("30", "60", "90", "120", "150", "180", "210", "300")
DEFAULT_DURATION_SELECTION = "60"
CUSTOM_DURATION = "custom"

DEFAULT_TEMPLATE_ID = "default-problem-solution"
UNTITLED_PITCH = "Untitled pitch"
UNKNOWN_TEMPLATE = "Unknown template"
SELF_SPEAKER = "Me"

HISTORY_KEY = "elepitch_history"
TEMPLATES_KEY = "elepitch_templates"
LOGIN_KEY = "elepitch_isLoggedIn"
PROFILE_KEY = "elepitch_userProfile"
COMMUNITY_KEY = "elepitch_community"
COLLECTIONS_KEY = "elepitch_collections"
RECORDS_KEY = "elepitch_records"
USER_ID_KEY = "elepitch_userId"

PROFILE_LINK_BASE = "https://elepitch.app/user/"
QR_SERVICE_URL = "https://api.qrserver.com/v1/create-qr-code/"
