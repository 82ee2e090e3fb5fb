"""ID 生成ユーティリティ。

語彙アイテムの ID は所有者をまたいで一意な UUID とする。所有者の判定は
ID ではなくストアの user_id 列で行う。
"""

from __future__ import annotations

import uuid


def generate_vocabulary_id() -> str:
    """語彙アイテムの新規 ID を生成する。"""

    return str(uuid.uuid4())
