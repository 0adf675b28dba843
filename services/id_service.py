"""
識別碼服務：生成隊列項目與待辦事項的 ID

純計算邏輯，不涉及狀態
"""
import random
import string

ID_ALPHABET = string.ascii_lowercase + string.digits
ID_LENGTH = 9


def generate_id() -> str:
    """
    生成隨機的 9 位小寫字母 + 數字識別碼

    範例：k3x9a0qz1, 0b7mfw2rd

    注意：
    - 不檢查唯一性（Store 也不檢查）
    - 36^9 ≈ 1.0e14 種可能，單一行程生命週期內碰撞機率可忽略
    """
    return ''.join(random.choices(ID_ALPHABET, k=ID_LENGTH))
