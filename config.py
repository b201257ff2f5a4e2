import os
from dotenv import load_dotenv
load_dotenv()

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("SQLALCHEMY_DATABASE_URI", "sqlite:///app.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", 50 * 1024 * 1024))  # 50 MB default upload cap
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))
    HASH_CHUNK_SIZE = int(os.getenv("HASH_CHUNK_SIZE", 64 * 1024))
    EXPORT_CHUNK_SIZE = int(os.getenv("EXPORT_CHUNK_SIZE", 64 * 1024))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
