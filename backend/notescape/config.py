from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / ".notescape" / "data"
    sqlite_filename: str = "notescape.db"
    cors_origins: list[str] = ["*"]

    # Scheduling
    mastery_interval_days: int = 21  # interval at which a card counts as mastered
    max_interval_days: int | None = None  # None = unbounded growth
    default_due_limit: int = 20

    # Ledger
    review_xp_correct: int = 10
    review_xp_incorrect: int = 5
    streak_timezone: str = "UTC"  # IANA name used for day/week boundaries

    # Heuristic card generation
    generate_max_cards: int = 10
    generate_min_sentence_chars: int = 30

    model_config = {"env_prefix": "NOTESCAPE_"}


settings = Settings()
