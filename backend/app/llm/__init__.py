"""
LLMアダプタ層

【初心者向け】
- LLMClientインターフェースを実装したクライアントを提供
- 設定（LLM_PROVIDER）に応じてGeminiまたはOllamaを選択
"""
from app.core.exceptions import InvalidConfigurationError
from app.core.settings import Settings, settings
from app.llm.base import LLMClient


def get_llm_client(provider: str | None = None, config: Settings | None = None) -> LLMClient:
    """
    LLMクライアントを取得（設定に応じてGeminiまたはOllamaを選択）

    【初心者向け】
    環境変数 LLM_PROVIDER の値に応じて、適切なLLMクライアントを返します。
    - "gemini" → GeminiClient
    - "ollama" → OllamaClient

    config を渡した場合はその値（APIキー・モデル名・URL・タイムアウト）で
    新しいクライアントを作る。省略時はグローバル設定のシングルトンを返す。

    Returns:
        LLMClientインターフェースを実装したクライアント

    Raises:
        InvalidConfigurationError: 無効なプロバイダーが指定された場合
    """
    provider = (provider or (config or settings).llm_provider).lower()

    if provider == "gemini":
        from app.llm.gemini import GeminiClient, get_gemini_client
        if config is None:
            return get_gemini_client()
        return GeminiClient(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            timeout_sec=config.llm_timeout_sec,
            temperature=config.gemini_temperature,
            max_output_tokens=config.gemini_max_output_tokens,
        )
    elif provider == "ollama":
        from app.llm.ollama import OllamaClient, get_ollama_client
        if config is None:
            return get_ollama_client()
        return OllamaClient(
            base_url=config.ollama_base_url,
            model=config.ollama_model,
            timeout_sec=config.llm_timeout_sec,
        )
    else:
        raise InvalidConfigurationError(
            f"無効なLLMプロバイダー: {provider}。"
            f"LLM_PROVIDER環境変数に 'gemini' または 'ollama' を指定してください。"
        )
