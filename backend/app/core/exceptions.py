"""
ドメイン例外の定義（検索パイプライン全体で使うエラーの分類）

【初心者向け】
- RagError を基底に、原因ごとに例外クラスを分ける
- routers 側で app.core.errors.app_error_from() を使ってHTTPエラーに変換する
- 「失敗したのにゼロベクトルや空の回答を返す」ことはしない。必ず例外にする
"""


class RagError(Exception):
    """検索パイプラインの基底例外"""
    pass


class InvalidConfigurationError(RagError):
    """チャンク設定などの構成値が不正（起動時に致命的）"""
    pass


class InvalidArgumentError(RagError):
    """呼び出し引数が不正（k <= 0 など）"""
    pass


class InvalidQueryError(InvalidArgumentError):
    """質問文や max_results が不正"""
    pass


class EmbeddingBackendError(RagError):
    """
    Embeddingバックエンドの失敗（接続不可・次元数不一致など）

    transient=True のものだけがリトライ対象
    """

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class GenerationBackendError(RagError):
    """回答生成（LLM）バックエンドの失敗"""

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class DegenerateVectorError(RagError):
    """大きさ0のベクトルでコサイン類似度が定義できない"""
    pass


class BackendTimeoutError(RagError):
    """外部呼び出し（embedding / generation）のタイムアウト"""

    transient = True

    def __init__(self, backend: str, timeout_sec: float):
        super().__init__(f"{backend}の呼び出しがタイムアウトしました（{timeout_sec}秒）")
        self.backend = backend
        self.timeout_sec = timeout_sec
