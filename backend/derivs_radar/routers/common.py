from typing import Tuple

from fastapi import HTTPException

from ..models import COINS, CoinSnapshot, MarketSnapshot
from ..services.snapshot_store import SnapshotStore


def coin_snapshot(store: SnapshotStore, coin: str) -> Tuple[str, CoinSnapshot, MarketSnapshot]:
    """Validate ``coin`` and return it with the latest published data.

    400 for anything other than BTC/ETH; 503 until the first refresh lands.
    """
    sym = coin.upper()
    if sym not in COINS:
        raise HTTPException(status_code=400, detail=f"Invalid coin {coin!r}, expected BTC or ETH")
    snap = store.snapshot
    if snap is None:
        raise HTTPException(status_code=503, detail="Loading...")
    return sym, snap.coin(sym), snap
