from pydantic import BaseModel
from typing import Optional
import os

class Settings(BaseModel):
    osrm_url: str = os.getenv("OSRM_URL", "http://localhost:5000")
    osrm_profile: str = os.getenv("OSRM_PROFILE", "foot")
    osrm_timeout_s: float = float(os.getenv("OSRM_TIMEOUT_S", "5.0"))
    default_dest_name: str = os.getenv("DEFAULT_DEST_NAME", "목적지")
    # Boundary-layer fallback identity only; the core always receives an explicit user id.
    demo_user_id: Optional[str] = os.getenv("DEMO_USER_ID") or None
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
