"""
並發控制工具

一場遊戲的所有寫入操作必須互斥（relink 會同時修改兩位玩家，
而第三個操作可能正在讀取他們原本的關係），所以鎖的範圍是「整場遊戲」，
不做 per-participant 的細粒度鎖。

兩層保護：
1. Process 內：每個 game_id 一把 threading.Lock（SQLite 不支援 FOR UPDATE）
2. Database：SELECT ... FOR UPDATE 鎖住 Game 這一列（多個 worker process 共用 PostgreSQL 時）
"""
import threading
import weakref
from functools import wraps

from sqlalchemy.orm import Session, Query

from database import find_session
from models import Game
from core.exceptions import GameNotFound

_registry_guard = threading.Lock()
# 沒有任何請求持有的鎖會被回收，不存在的 game_id 不會一直累積
_game_mutexes = weakref.WeakValueDictionary()


def game_mutex(game_id: str) -> threading.Lock:
    """取得（必要時建立）某場遊戲專用的 process 內互斥鎖"""
    with _registry_guard:
        mutex = _game_mutexes.get(game_id)
        if mutex is None:
            mutex = threading.Lock()
            _game_mutexes[game_id] = mutex
        return mutex


def serialized_per_game(func):
    """
    讓同一場遊戲的寫入操作依序執行

    使用方式（必須放在 @transactional 外層，鎖要涵蓋 commit）：
        @staticmethod
        @serialized_per_game
        @transactional
        def submit_claim(db: Session, game_id: str, ...):
            ...

    注意：
        - 第二個參數（或 kwargs['game_id']）必須是 game_id
        - 鎖不可重入：被保護的函式內不要再呼叫另一個被保護的函式
        - 取得鎖之後會 expire session 內所有物件，
          呼叫端之前讀過的玩家 / 遊戲資料一律重新從資料庫載入
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        game_id = kwargs.get('game_id')
        if game_id is None and len(args) > 1:
            game_id = args[1]
        if game_id is None:
            raise ValueError(
                f"@serialized_per_game requires 'game_id' as second argument of {func.__name__}"
            )

        with game_mutex(str(game_id)):
            db = find_session(args, kwargs)
            if db is not None:
                db.expire_all()
            return func(*args, **kwargs)

    return wrapper


def with_game_lock(game_id: str, db: Session) -> Query:
    """
    鎖定一場 Game（行級鎖）

    使用場景：
    - 任何會修改玩家、claim 或遊戲階段的操作
    - 需要確保整個 transaction 期間沒有其他請求修改同一場遊戲

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(Game).populate_existing().filter(
        Game.id == game_id
    ).with_for_update(nowait=False)


def lock_game(game_id: str, db: Session) -> Game:
    """鎖定並取得 Game，不存在時拋出 GameNotFound"""
    game = with_game_lock(game_id, db).first()
    if not game:
        raise GameNotFound(game_id)
    return game
