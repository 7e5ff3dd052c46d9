"""
Grille tarifaire des adhésions (statique, hors catalogue BD).
Le serveur la connaît aussi: un prix d'adhésion qui diverge de la grille est une falsification.
"""
from typing import Any, Dict, Optional

from backend.config import DEFAULT_MEMBERSHIP_MONTHS

MEMBERSHIP_TIERS: Dict[str, Dict[str, Any]] = {
    "annual": {
        "name": "Annual Membership",
        "price": 299.0,
        "duration": 12,
    },
}

def get_tier(tier_id: str) -> Optional[Dict[str, Any]]:
    return MEMBERSHIP_TIERS.get(str(tier_id or ""))

def duration_months(metadata: Optional[Dict[str, Any]], tier_id: Optional[str] = None) -> int:
    """
    Durée (mois) d'une ligne d'adhésion:
    - palier connu (tier_id): durée de la grille, metadata ignorée
    - sinon metadata.duration si présent et valide
    - sinon DEFAULT_MEMBERSHIP_MONTHS (12)
    """
    tier = get_tier(tier_id) if tier_id else None
    if tier:
        return int(tier["duration"])
    raw = (metadata or {}).get("duration")
    try:
        months = int(raw) if raw is not None else 0
    except (TypeError, ValueError):
        months = 0
    if months > 0:
        return months
    return DEFAULT_MEMBERSHIP_MONTHS
