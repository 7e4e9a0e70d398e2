"""
目標鏈服務：建立與檢查「目標循環」

純計算邏輯，只處理 {participant_id: target_id} 的對應表，
不碰資料庫，也不負責階段轉換（由 GameManager / EliminationManager 負責）

目標鏈的規則：
- 每位存活玩家都有一個目標，沿著 target 走會經過所有存活玩家剛好一次再回到起點
- 被淘汰的玩家沒有目標，也不是任何人的目標
"""
import random
from typing import Dict, Iterable, List, Optional

from core.exceptions import InsufficientPlayers, ChainIntegrityError

MIN_CHAIN_SIZE = 2


def shuffle_ids(participant_ids: Iterable[str], rng: random.Random) -> List[str]:
    """
    Fisher–Yates 洗牌（每一種排列機率相同）

    使用注入的 rng，測試時傳入固定 seed 的 random.Random 即可重現結果
    """
    order = list(participant_ids)
    for i in range(len(order) - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return order


def build_chain(
    participant_ids: Iterable[str],
    rng: Optional[random.Random] = None,
    min_size: int = MIN_CHAIN_SIZE
) -> Dict[str, str]:
    """
    建立目標循環

    流程：
    1. 隨機排列所有玩家
    2. 每位玩家的目標是排列中的下一位，最後一位指回第一位

    這樣保證結果是單一個簡單循環，且人數 >= 2 時不會有人以自己為目標

    參數：
        participant_ids: 已登入且存活的玩家 ID
        rng: 亂數來源（預設使用 random.SystemRandom）
        min_size: 最少人數

    返回：
        {participant_id: target_id}

    異常：
        InsufficientPlayers: 人數不足
    """
    ids = list(dict.fromkeys(participant_ids))
    required = max(min_size, MIN_CHAIN_SIZE)
    if len(ids) < required:
        raise InsufficientPlayers(required, len(ids))

    order = shuffle_ids(ids, rng or random.SystemRandom())
    return {
        participant_id: order[(i + 1) % len(order)]
        for i, participant_id in enumerate(order)
    }


def follow_chain(targets: Dict[str, Optional[str]], start: str) -> List[str]:
    """
    從 start 沿著 target 走一圈，返回經過的玩家（不含回到起點的那一步）

    遇到斷鏈（沒有目標或目標不在表內）或提前繞回非起點的玩家時停止
    """
    path = [start]
    seen = {start}
    current = targets.get(start)
    while current is not None and current != start:
        if current in seen or current not in targets:
            break
        path.append(current)
        seen.add(current)
        current = targets.get(current)
    return path


def verify_chain(targets: Dict[str, Optional[str]], alive_ids: Iterable[str]) -> None:
    """
    檢查目標鏈是否合法，不合法時拋出 ChainIntegrityError

    參數：
        targets: 所有玩家（含已淘汰）的 {participant_id: target_id}
        alive_ids: 存活玩家 ID

    檢查項目：
    - 已淘汰的玩家沒有目標，也不是任何人的目標
    - 存活玩家的目標都是存活玩家
    - 從任一存活玩家出發，走一圈剛好經過所有存活玩家並回到起點
    - 只有一位存活時，他的目標只能是自己或空
    """
    alive = set(alive_ids)

    for participant_id, target_id in targets.items():
        if participant_id not in alive:
            if target_id is not None:
                raise ChainIntegrityError(
                    f"Eliminated participant {participant_id} still targets {target_id}"
                )
        elif target_id is not None and target_id not in alive:
            raise ChainIntegrityError(
                f"Participant {participant_id} targets non-alive participant {target_id}"
            )

    if not alive:
        return

    if len(alive) == 1:
        (survivor,) = alive
        if targets.get(survivor) not in (None, survivor):
            raise ChainIntegrityError(f"Sole survivor {survivor} targets someone else")
        return

    start = next(iter(alive))
    path = follow_chain({pid: targets.get(pid) for pid in alive}, start)
    last_target = targets.get(path[-1])
    if len(path) != len(alive) or last_target != start:
        raise ChainIntegrityError(
            f"Target chain covers {len(path)} of {len(alive)} alive participants"
        )
