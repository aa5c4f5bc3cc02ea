"""
Attachment handling: fold attached files into the prompt text.

Text files are inlined between labeled delimiters. Binary files (images,
archives, ...) are only referenced by name, type and size.
"""

from __future__ import annotations

from collections.abc import Sequence

from chatstudio.models.request import Attachment

TEXT_EXTENSIONS = (
    ".txt", ".md", ".json", ".js", ".ts", ".jsx", ".tsx",
    ".py", ".html", ".css", ".xml", ".csv",
)

TEXT_MIME_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-yaml",
}


def is_textual(attachment: Attachment) -> bool:
    """Whether an attachment's content can go into a text prompt."""
    if attachment.text_content is None:
        return False
    mime = attachment.mime_type.lower()
    if mime.startswith("text/") or mime in TEXT_MIME_TYPES:
        return True
    return attachment.name.lower().endswith(TEXT_EXTENSIONS)


def _reference(attachment: Attachment) -> str:
    size = f", {attachment.size} bytes" if attachment.size is not None else ""
    return f"- {attachment.name} ({attachment.mime_type}{size})"


def fold_attachments(prompt: str, attachments: Sequence[Attachment]) -> str:
    """Return the prompt with attachment sections appended."""
    if not attachments:
        return prompt

    textual = [a for a in attachments if is_textual(a)]
    binary = [a for a in attachments if not is_textual(a)]
    sections: list[str] = []

    if textual:
        blocks = "\n\n".join(
            f"\n--- File: {a.name} ({a.mime_type}) ---\n{a.text_content}\n--- End of {a.name} ---"
            for a in textual
        )
        sections.append(
            f"[Attached Files Content]\n{blocks}\n[End of Files]\n\n"
            "Please consider the content of these attached files when responding to the user's message."
        )

    if binary:
        listing = "\n".join(_reference(a) for a in binary)
        sections.append(f"[Attached Binary Files]\n{listing}\n[End of Binary Files]")

    return "\n\n".join([prompt, *sections])
