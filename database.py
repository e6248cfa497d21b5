import logging

from pymongo import ASCENDING, DESCENDING, MongoClient

logger = logging.getLogger(__name__)

# =====================================================
# 🗄️ CONNECTION
# =====================================================
_client = None
_db = None


def init_db(app, database=None):
    """Bind the database used by every collection accessor.

    A ready-made ``database`` (for example a mongomock database in tests)
    takes precedence over ``MONGO_URI``. The pymongo client connects lazily,
    so this never blocks on an unreachable server.
    """
    global _client, _db

    if database is not None:
        _db = database
        return _db

    logger.info("📄 Connecting to MongoDB...")
    _client = MongoClient(
        app.config["MONGO_URI"],
        serverSelectionTimeoutMS=30000,
        connectTimeoutMS=30000,
        socketTimeoutMS=30000,
    )
    _db = _client[app.config["MONGO_DB_NAME"]]
    return _db


def get_db():
    if _db is None:
        raise RuntimeError("Database not initialised. Call init_db() first.")
    return _db


def ping():
    """Return True when the server answers a ping"""
    try:
        get_db().client.admin.command("ping")
        return True
    except Exception as e:
        logger.warning("⚠️ MongoDB ping failed: %s", e)
        return False


# =====================================================
# 👤 USER & AUTH COLLECTIONS
# =====================================================
def users_collection():
    return get_db()["users"]


def admins_collection():
    return get_db()["admins"]


def otp_collection():
    return get_db()["otps"]


def password_reset_otp_collection():
    return get_db()["password_reset_otps"]


# =====================================================
# 🏢 INTERNSHIP COLLECTIONS
# =====================================================
def internships_collection():
    return get_db()["internships"]


def applications_collection():
    return get_db()["applications"]


def excel_files_collection():
    return get_db()["excel_files"]


# =====================================================
# 🎯 INDEXES
# =====================================================
def create_indexes():
    """Create uniqueness, TTL and query indexes"""
    logger.info("🔧 Creating database indexes...")

    users_collection().create_index("email", unique=True)
    users_collection().create_index("createdAt")

    admins_collection().create_index("username", unique=True)

    # Store-level expiry; codes are also compared against expiresAt on use
    for collection in (otp_collection(), password_reset_otp_collection()):
        collection.create_index("email", unique=True)
        collection.create_index("expiresAt", expireAfterSeconds=0)

    internships_collection().create_index([("isActive", ASCENDING), ("createdAt", DESCENDING)])
    internships_collection().create_index("domain")

    # One application per user and internship
    applications_collection().create_index(
        [("userId", ASCENDING), ("internshipId", ASCENDING)],
        unique=True,
    )
    applications_collection().create_index("appliedAt")
    applications_collection().create_index("status")

    excel_files_collection().create_index("createdAt")

    logger.info("✅ All database indexes created successfully!")
