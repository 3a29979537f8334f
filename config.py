import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
BASE_DIR = Path(__file__).parent
KV_PATH = Path(os.getenv("KV_PATH", BASE_DIR / "data" / "kv.json"))
SITE_DIST_DIR = Path(os.getenv("SITE_DIST_DIR", BASE_DIR / "dist"))
SITE_TEMPLATE_DIR = BASE_DIR / "site_templates"

# Site metadata
SITE_TITLE = os.getenv("SITE_TITLE", "Magnolia Blog")
SITE_DESCRIPTION = os.getenv(
    "SITE_DESCRIPTION", "Notes on technology, lifestyle and everyday discoveries"
)
SITE_BASE_PATH = os.getenv("SITE_BASE_PATH", "").rstrip("/")
SITE_LANG = os.getenv("SITE_LANG", "en")

# Auth / session
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")
SESSION_COOKIE = "session_id"
SESSION_HOURS = int(os.getenv("SESSION_HOURS", "24"))
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

# GitHub Actions deploy
GITHUB_TOKEN = os.getenv("PERSONAL_ACCESS_TOKEN", "")
REPO_OWNER = os.getenv("REPO_OWNER", "")
REPO_NAME = os.getenv("REPO_NAME", "")
GITHUB_API = os.getenv("GITHUB_API", "https://api.github.com")
DEPLOY_WORKFLOW = os.getenv("DEPLOY_WORKFLOW", "deploy.yml")
DEPLOY_REF = os.getenv("DEPLOY_REF", "main")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
