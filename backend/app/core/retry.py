"""
外部呼び出しの回数制限付きリトライ

- transient 属性が True の例外だけを再試行する（タイムアウト・接続失敗・HTTP 5xx など）
- 次元数不一致や空応答などの「壊れた出力」は再試行しない
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    return bool(getattr(exc, "transient", False))


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    max_attempts: int,
    label: str,
    retry_delay_sec: float = 0.5,
) -> T:
    """
    func を最大 max_attempts 回まで呼び出す

    Args:
        func: 引数なしのコルーチン関数（呼ぶたびに新しいawaitableを返すこと）
        max_attempts: 最大試行回数（1なら再試行なし）
        label: ログ用の呼び出し名
        retry_delay_sec: 再試行までの待機秒数（試行ごとに倍）

    Returns:
        func の戻り値
    """
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except Exception as e:
            if attempt >= attempts or not is_transient(e):
                raise
            wait_time = retry_delay_sec * (2 ** (attempt - 1))
            logger.warning(
                f"{label}が一時的に失敗しました: {type(e).__name__}: {e} "
                f"リトライ待機: {wait_time:.1f}秒後（試行 {attempt}/{attempts}）"
            )
            await asyncio.sleep(wait_time)
    # attempts >= 1 なのでここには来ない
    raise RuntimeError(f"{label}: retry loop exited unexpectedly")
