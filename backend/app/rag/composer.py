"""
回答生成（質問 + 引用 → LLM → 回答テキスト）

LLM呼び出しそのものは外部サービス。ここではプロンプト構築・タイムアウト・
回数制限付きリトライ・空応答チェックだけを行う。
"""
import asyncio
import logging
from typing import List

from app.core.exceptions import BackendTimeoutError, GenerationBackendError, RagError
from app.core.retry import call_with_retry
from app.docs.models import Citation
from app.llm.base import LLMClient
from app.llm.prompt import build_messages

# ロガー設定
logger = logging.getLogger(__name__)


class AnswerComposer:
    """引用を根拠にLLMで回答を作る"""

    def __init__(self, llm_client: LLMClient, timeout_sec: float = 60, max_attempts: int = 2):
        self.llm_client = llm_client
        self.timeout_sec = timeout_sec
        self.max_attempts = max_attempts

    async def compose(self, query: str, citations: List[Citation]) -> str:
        """
        回答を生成する

        Args:
            query: 質問文
            citations: 引用（検索順）

        Returns:
            回答テキスト

        Raises:
            BackendTimeoutError: タイムアウト（リトライ後も）
            GenerationBackendError: LLMの失敗・空応答
        """
        messages = build_messages(question=query, citations=citations)
        return await call_with_retry(
            lambda: self._call(messages),
            max_attempts=self.max_attempts,
            label="回答生成",
        )

    async def _call(self, messages: List[dict[str, str]]) -> str:
        try:
            answer = await asyncio.wait_for(self.llm_client.chat(messages=messages), timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            logger.error(f"回答生成タイムアウト: {self.timeout_sec}秒")
            raise BackendTimeoutError("generation", self.timeout_sec)
        except RagError:
            raise
        except Exception as e:
            logger.error(f"回答生成で予期しないエラー: {type(e).__name__}: {e}")
            raise GenerationBackendError(f"回答生成中にエラーが発生しました: {e}")

        if not isinstance(answer, str) or not answer.strip():
            raise GenerationBackendError("LLMが空の回答を返しました")
        return answer.strip()
