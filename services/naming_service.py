"""
命名服務：生成玩家登入代碼

純計算邏輯，不涉及狀態轉換
"""
import random
import string
from typing import Optional

DEFAULT_PREFIX = "AGENT"
MAX_PREFIX_LENGTH = 8


def normalize_code(code: str) -> str:
    """代碼一律以大寫、去除空白的形式儲存與比對（登入時不分大小寫）"""
    return "".join(code.split()).upper()


def generate_access_code(name: str, digits: int = 3, rng: Optional[random.Random] = None) -> str:
    """
    根據玩家名稱生成登入代碼

    格式：名稱的英數字（大寫，最多 8 個字元）+ N 位數字
    範例：Alice -> ALICE123, "Bob Smith" -> BOBSMITH042

    注意：
    - 不檢查唯一性（由呼叫者負責）
    - 名稱裡沒有英數字時（例如全是中文），使用 AGENT 當前綴
    """
    rng = rng or random
    prefix = "".join(ch for ch in name.upper() if ch in string.ascii_uppercase + string.digits)
    prefix = prefix[:MAX_PREFIX_LENGTH] or DEFAULT_PREFIX
    suffix = "".join(rng.choices(string.digits, k=digits))
    return f"{prefix}{suffix}"
