import logging
import os
import sys
from pathlib import Path
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

def _load_env_from_file():
    # Load voiceroom/.env into process env for local/dev. In production,
    # real environment variables take precedence and are already set.
    try:
        env_path = Path(__file__).with_name('.env')
        if env_path.exists():
            for raw in env_path.read_text(encoding='utf-8').splitlines():
                line = raw.strip()
                if not line or line.startswith('#') or '=' not in line:
                    continue
                k, v = line.split('=', 1)
                key = k.strip()
                val = v.strip().strip('"').strip("'")
                # Do not override existing real envs
                os.environ.setdefault(key, val)
    except OSError:
        # Absence or unreadable .env should not crash the app
        pass

# Must run before the modules below read os.getenv at import time
_load_env_from_file()

from .db import Base, engine
from .security import current_user, get_db, get_hub
from .ledger import balances
from .hub import RoomHub
from .wallet import router as wallet_router
from .gifts import router as gifts_router
from .rooms import router as rooms_router
from .games.wheel import router as wheel_router
from .games.slots import router as slots_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Voice Room API")

origins = [os.getenv("CLIENT_ORIGIN", "http://localhost:5173")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

app.state.hub = RoomHub()

@app.get("/healthz")
def healthz(): return {"ok": True}

@app.get("/me")
def me(user=Depends(current_user), db=Depends(get_db)):
    return {"id": user.id, "username": user.username, **balances(db, user.id)}

@app.get("/settings/games")
def game_settings(hub=Depends(get_hub)):
    return hub.settings.model_dump(by_alias=True)

app.include_router(wallet_router)
app.include_router(gifts_router)
app.include_router(rooms_router)
app.include_router(wheel_router)
app.include_router(slots_router)
