"""File operations: media storage and CSV export of leaderboard data."""
import logging
import mimetypes
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol

import pandas as pd

from green_rewards.types import LeaderboardEntry, RewardDistributionRecord

logger = logging.getLogger(__name__)

LEADERBOARD_COLUMNS = ["rank", "user_id", "name", "avatar_url", "role", "total_points", "total_actions"]
WINNER_COLUMNS = ["period_key", "rank", "user_id", "name", "email", "previous_total", "bonus_points", "new_total"]

# mimetypes does not know all of these everywhere
_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
    "image/heif": ".heif",
    "video/mp4": ".mp4",
    "video/mpeg": ".mpeg",
    "video/mov": ".mov",
    "video/avi": ".avi",
    "video/x-flv": ".flv",
    "video/mpg": ".mpg",
    "video/webm": ".webm",
    "video/wmv": ".wmv",
    "video/3gpp": ".3gp",
}


class MediaStore(Protocol):
    def save(self, data: bytes, mime_type: str) -> str:
        ...

    def delete(self, media_ref: str) -> None:
        ...


class LocalMediaStore:
    """Stores uploads under a local directory and returns the relative path as the media ref."""

    def __init__(self, media_dir: Path):
        self.media_dir = Path(media_dir)

    def save(self, data: bytes, mime_type: str) -> str:
        self.media_dir.mkdir(parents=True, exist_ok=True)
        extension = _EXTENSIONS.get(mime_type.lower()) or mimetypes.guess_extension(mime_type) or ".bin"
        filename = f"{datetime.now().strftime('%Y%m%d')}_{uuid.uuid4().hex}{extension}"
        path = self.media_dir / filename
        path.write_bytes(data)
        logger.info(f"Stored media ({len(data)} bytes) at {path}")
        return filename

    def delete(self, media_ref: str) -> None:
        """Remove a stored upload; a missing file is not an error."""
        path = self.media_dir / Path(media_ref).name
        path.unlink(missing_ok=True)
        logger.info(f"Removed media {path}")


def generate_output_filename(prefix: str = "leaderboard") -> str:
    """
    Generate a unique output filename based on timestamp.

    Returns:
        Generated filename string (e.g., "leaderboard_20250122_143022.csv")
    """
    safe_prefix = "".join(c if c.isalnum() or c in ('-', '_') else '_' for c in prefix)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{safe_prefix}_{timestamp}.csv"


def leaderboard_to_dataframe(entries: List[LeaderboardEntry]) -> pd.DataFrame:
    rows = [
        {
            "rank": entry.rank,
            "user_id": entry.user_id,
            "name": entry.name,
            "avatar_url": entry.avatar_url,
            "role": entry.role.value,
            "total_points": entry.total_points,
            "total_actions": entry.total_actions,
        }
        for entry in entries
    ]
    return pd.DataFrame(rows, columns=LEADERBOARD_COLUMNS)


def distribution_to_dataframe(record: RewardDistributionRecord) -> pd.DataFrame:
    rows = [
        {
            "period_key": record.period_key,
            "rank": winner.rank,
            "user_id": winner.user_id,
            "name": winner.name,
            "email": winner.email,
            "previous_total": winner.previous_total,
            "bonus_points": winner.bonus_points,
            "new_total": winner.new_total,
        }
        for winner in record.winners
    ]
    return pd.DataFrame(rows, columns=WINNER_COLUMNS)


def dataframe_to_csv_text(df: pd.DataFrame) -> str:
    """Render a DataFrame as CSV text for HTTP responses."""
    return df.to_csv(index=False)


def save_dataframe_to_csv(df: pd.DataFrame, output_dir: Path, filename: Optional[str] = None) -> Path:
    """
    Save a DataFrame to CSV in the output directory.

    Args:
        df: Data to write
        output_dir: Target directory, created if missing
        filename: Optional custom filename; generated if not provided

    Returns:
        Path to the saved file
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    filename = filename or generate_output_filename()
    if not filename.endswith('.csv'):
        filename = f"{filename}.csv"

    # Sanitize to prevent directory traversal
    output_path = output_dir / Path(filename).name

    # UTF-8-sig (BOM) for Excel compatibility
    df.to_csv(output_path, index=False, encoding='utf-8-sig')
    logger.info(f"Results saved to: {output_path}")
    return output_path
