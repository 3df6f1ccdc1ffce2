"""
Prompt texts and prompt assembly helpers.

``ANSWER_SYSTEM_PROMPT`` is part of the observable behavior of the ask
endpoint and must not be reworded casually.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

ANSWER_SYSTEM_PROMPT = """You are a knowledgeable assistant with two main capabilities:
1. Answer questions about the document content using the provided document context
2. Enhance your answers with relevant external knowledge when appropriate

When answering questions:
1. First, use the information from the provided document context
2. If the document context is insufficient or you can provide additional valuable insights:
   - Add relevant external knowledge to complement the document content
   - Clearly distinguish between document content and external information
   - Cite sources when possible
3. If the document context doesn't contain relevant information:
   - Provide a general answer based on your knowledge
   - Explain that the information is not from the document
   - Offer to elaborate further if needed

For document improvement requests:
- Analyze the current content
- Provide specific, actionable suggestions
- Include examples and best practices from your knowledge
- Focus on making the document more effective and comprehensive

Remember to:
- Be clear about which information comes from the document vs. external sources
- Maintain accuracy and relevance
- Provide comprehensive but concise answers
- Use a helpful and professional tone"""

SUMMARY_PROMPT = (
    "You are a document processing assistant. Your task is to understand and "
    "summarize the following document. This will be used to provide context "
    "for future conversations. Here's the document:\n\n"
)

CONTEXT_HEADER = "Document Context:\n\n"


def build_context_block(contents: Sequence[str]) -> str:
    """
    Concatenate retrieved chunk contents, tagged with 1-based ordinals.

    Returns an empty string when nothing was retrieved.
    """
    if not contents:
        return ""
    return CONTEXT_HEADER + "\n\n".join(
        f"[{i}] {content}" for i, content in enumerate(contents, start=1)
    )


def build_context_message(context_text: str, summary: Optional[str] = None) -> str:
    summary_section = f"\n\nDocument Summary:\n{summary}" if summary else ""
    return (
        "Use the following context to answer the user's question:"
        f"{summary_section}\n\nRelevant Document Chunks:\n{context_text}\n\n"
        "If the context doesn't contain relevant information, say so."
    )


def build_answer_messages(
    history: Sequence[Dict[str, str]],
    question: str,
) -> List[Dict[str, str]]:
    """
    Assemble the dialogue sent to the answer generator:
    system instruction, prior messages (oldest first), current question.
    """
    messages: List[Dict[str, str]] = [
        {"role": "system", "content": ANSWER_SYSTEM_PROMPT}
    ]
    messages.extend({"role": m["role"], "content": m["content"]} for m in history)
    messages.append({"role": "user", "content": question})
    return messages


def build_summary_prompt(text: str) -> str:
    return SUMMARY_PROMPT + text
