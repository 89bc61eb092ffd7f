"""
Badge metadata generation.
Builds the NFT metadata document that wallets and explorers read.
Field names here are part of the public format and must not change.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional

DEFAULT_BADGE_IMAGE = "https://skillbadge.app/static/badge.svg"


def format_score(score: Optional[int], total_score: Optional[int]) -> str:
    if score is None:
        return "Passed"
    if total_score is None:
        return str(score)
    return f"{score}/{total_score}"


def format_percentage(score: Optional[int], total_score: Optional[int]) -> str:
    if not total_score or score is None:
        return "N/A"
    return f"{score / total_score * 100:.2f}%"


def generate_badge_metadata(
    test_id: str,
    owner_wallet: str,
    test_title: Optional[str] = None,
    score: Optional[int] = None,
    total_score: Optional[int] = None,
    image_url: str = DEFAULT_BADGE_IMAGE,
) -> Dict[str, Any]:
    """
    Generate NFT metadata for an achievement badge.

    Args:
        test_id: Test the badge was earned on
        owner_wallet: Wallet receiving the badge
        test_title: Human readable test title
        score: Correct answers, if known
        total_score: Total answers, if known
        image_url: Badge artwork URL

    Returns:
        Metadata dictionary with name, description, image and attributes
    """
    title = test_title or "Achievement"
    issued_at = datetime.utcnow().isoformat(timespec="milliseconds") + "Z"

    return {
        "name": f"{title} Badge",
        "description": f"Awarded to {owner_wallet} for passing \"{title}\" ({test_id}).",
        "image": image_url,
        "attributes": [
            {"trait_type": "Test ID", "value": test_id},
            {"trait_type": "Test Title", "value": title},
            {"trait_type": "Wallet", "value": owner_wallet},
            {"trait_type": "Score", "value": format_score(score, total_score)},
            {"trait_type": "Percentage", "value": format_percentage(score, total_score)},
            {"trait_type": "Issued At", "value": issued_at},
        ],
    }


def metadata_key(test_id: str, owner_wallet: str) -> str:
    """Object key for a badge's metadata; stable so retries overwrite the same blob."""
    return f"{test_id}_{owner_wallet}.json"


def serialize_metadata(metadata: Dict[str, Any]) -> bytes:
    return json.dumps(metadata, indent=2).encode("utf-8")
