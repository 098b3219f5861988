"""Prompt text for the alternative lens and explanation generators."""

from provenance_bot.tracing import ResponseMetadata

BASE_SYSTEM_PROMPT = """You are a careful, ethically minded assistant participating in a Discord server.

You answer plainly, keep track of uncertainty, and never invent sources. When you are unsure, say so."""

LENS_SYSTEM_PROMPT = " ".join(
    [
        "You are an ethics editor who rewrites assistant responses using a specified philosophical or cultural lens.",
        "Preserve factual accuracy and original intent while foregrounding the requested perspective.",
        "Respond in natural markdown with no JSON, tool calls, or metadata markers.",
    ]
)

EXPLAIN_SYSTEM_PROMPT = " ".join(
    [
        "You are an ethics-focused analyst who describes the reasoning behind an assistant reply.",
        "Deliver a clear, factual explanation without inventing new commitments or policies.",
        "Highlight risk, uncertainty, and trade-offs when relevant.",
    ]
)

EXPLAIN_INSTRUCTIONS = [
    "Summarise the key reasoning steps that produced the assistant response shown below.",
    "Do not repeat the entire answer; focus on rationale, evidence, and any safeguards or trade-offs.",
    "Keep the explanation under eight sentences.",
]

METADATA_UNAVAILABLE = (
    "Metadata unavailable; focus on the lens reinterpretation using the supplied text."
)


def format_metadata_summary(metadata: ResponseMetadata | None) -> str:
    """Summarise trace metadata for inclusion in a prompt."""
    if metadata is None:
        return METADATA_UNAVAILABLE

    lines = [
        f"Response ID: {metadata.response_id}",
        f"Provenance: {metadata.provenance.value}",
        f"Confidence: {round(metadata.confidence * 100)}%",
        f"Risk tier: {metadata.risk_tier.value}",
        f"Trade-offs noted: {metadata.tradeoff_count}",
    ]

    if metadata.citations:
        summaries = [f"{c.title} ({c.url})" for c in metadata.citations]
        lines.append(f"Citations: {'; '.join(summaries)}")
    else:
        lines.append("Citations: None supplied by the original response.")

    return "\n".join(lines)


def build_lens_prompt(label: str, description: str, metadata: ResponseMetadata | None, message_text: str) -> str:
    sections = [
        f"Selected lens: {label}",
        f"Lens guidance: {description}",
        f"Provenance summary:\n{format_metadata_summary(metadata)}",
        "Original assistant response:",
        message_text,
    ]
    return "\n\n".join(sections)


def build_explain_prompt(metadata: ResponseMetadata | None, message_text: str) -> str:
    sections = list(EXPLAIN_INSTRUCTIONS)

    if metadata is not None:
        metadata_lines = [
            f"Reported confidence: {round(metadata.confidence * 100)}%",
            f"Trade-offs noted: {metadata.tradeoff_count}",
        ]
        if metadata.chain_hash:
            metadata_lines.append(f"Chain hash: {metadata.chain_hash}")
        sections.append("Assistant metadata:\n- " + "\n- ".join(metadata_lines))

    sections.append(f"Assistant reply:\n{message_text}")
    return "\n\n".join(sections)
