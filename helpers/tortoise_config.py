from tortoise import Tortoise
import os
from dotenv import load_dotenv

load_dotenv()

TORTOISE_CONFIG = {
    "connections": {
        "default": os.getenv("DATABASE_URL", "sqlite://db.sqlite3")
    },
    "apps": {
        "models": {
            "models": [
                "models.auth",
                "models.facebook",
                "aerich.models",
            ]
        }
    },
}


async def init_db(config: dict = TORTOISE_CONFIG) -> None:
    await Tortoise.init(config=config)


async def close_db() -> None:
    await Tortoise.close_connections()
