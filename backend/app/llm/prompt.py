"""
プロンプト生成ロジック（質問 + 根拠の抜粋 → LLM用メッセージ）
"""
from typing import List

from app.docs.models import Citation

SYSTEM_PROMPT = """You are an expert assistant that answers questions based solely on the provided context documents.

INSTRUCTIONS:
1. Answer the question using ONLY the information from the provided context
2. Be concise but comprehensive
3. If you quote or reference specific information, indicate which document it came from
4. If the context doesn't contain enough information to answer the question, say so clearly
5. Do not add information not present in the context
6. Focus on accuracy and relevance"""


def build_context(citations: List[Citation]) -> str:
    """
    引用を番号付き・ドキュメント名付きの根拠テキストに整形する

    抜粋はチャンクのテキストをそのまま使う（要約・切り詰めなし）
    """
    if len(citations) == 0:
        return "No relevant context documents were found."

    parts = []
    for i, citation in enumerate(citations, 1):
        parts.append(f"[{i}] Document: {citation.document}\nContent: {citation.text_excerpt}")
    return "\n\n".join(parts)


def build_messages(question: str, citations: List[Citation]) -> List[dict[str, str]]:
    """
    質問と引用からLLM用のメッセージリストを構築

    - system方針：根拠のみに基づく、根拠が足りなければそう述べる
    - citationsは検索順のままcontextに含める

    Args:
        question: 質問文
        citations: 引用リスト（スコア降順）

    Returns:
        LLM用メッセージリスト（[{"role": "system", "content": "..."}, ...]）
    """
    user_content = f"""CONTEXT DOCUMENTS:
{build_context(citations)}

QUESTION: {question}

ANSWER (be specific and cite sources):"""

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_content},
    ]
