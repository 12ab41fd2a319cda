"""
Code-fence tokenizer for free-text model output.

Grammar (line oriented):

    opening fence := indent? FENCE info?        FENCE = 3+ '`' or 3+ '~'
    info          := language-tag [rest ignored]
    closing fence := indent? FENCE'             same char, length >= opening
    body          := every line between the fences, verbatim

A fence still open at end of text produces a partial block running to the
end (closed=False). Text with no fence at all falls back to a single block
holding the whole text (see extract_code_blocks_or_whole).
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "txt"

# Fences indented further than this are body text
MAX_FENCE_INDENT = 3

_OPEN_FENCE = re.compile(r'^[ \t]{0,3}(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>[^`\n]*)$')

LANGUAGE_EXTENSIONS: Dict[str, str] = {
    "javascript": "js",
    "js": "js",
    "typescript": "ts",
    "ts": "ts",
    "jsx": "jsx",
    "tsx": "tsx",
    "css": "css",
    "html": "html",
    "json": "json",
    "python": "py",
    "py": "py",
}

DEFAULT_FIX_FIELDS = {
    "explanation": "The code was repaired by the AI assistant",
    "changesMade": ["Auto-fixed by AI"],
    "rootCause": "Analyzed by AI",
    "prevention": "Follow best practices and testing",
}


@dataclass
class CodeBlock:
    """One fenced block: language tag plus verbatim body."""
    language: str
    body: str
    closed: bool = True


def _closes(line: str, fence: str) -> bool:
    stripped = line.strip()
    return (
        len(line) - len(line.lstrip(" \t")) <= MAX_FENCE_INDENT
        and len(stripped) >= len(fence)
        and set(stripped) == {fence[0]}
    )


def extract_code_blocks(text: str) -> List[CodeBlock]:
    """
    Tokenize fenced code blocks.

    Args:
        text: Raw model output

    Returns:
        Blocks in order of appearance (empty list if there are no fences)
    """
    blocks: List[CodeBlock] = []
    if not text:
        return blocks

    fence: Optional[str] = None
    language = DEFAULT_LANGUAGE
    body: List[str] = []

    for line in text.splitlines():
        if fence is None:
            match = _OPEN_FENCE.match(line)
            if match:
                fence = match.group("fence")
                info = match.group("info").strip()
                language = info.split()[0].lower() if info else DEFAULT_LANGUAGE
                body = []
            continue

        if _closes(line, fence):
            blocks.append(CodeBlock(language=language, body="\n".join(body)))
            fence = None
        else:
            body.append(line)

    if fence is not None:
        logger.debug(f"Unterminated {language} fence; keeping partial block")
        blocks.append(CodeBlock(language=language, body="\n".join(body), closed=False))

    return blocks


def extract_code_blocks_or_whole(text: str) -> List[CodeBlock]:
    """Like extract_code_blocks, but unfenced text becomes one txt block."""
    blocks = extract_code_blocks(text)
    if blocks:
        return blocks
    return [CodeBlock(language=DEFAULT_LANGUAGE, body=(text or "").strip())]


def extension_for_language(language: str) -> str:
    """File extension for a fence language tag ("txt" when unknown)."""
    return LANGUAGE_EXTENSIONS.get((language or "").lower(), DEFAULT_LANGUAGE)


def extract_json_object(text: str) -> Optional[Any]:
    """
    Parse the outermost {...} span of a reply.

    Returns:
        Decoded JSON, or None if there is no span or it does not parse
    """
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        logger.debug(f"Reply JSON did not parse: {e}")
        return None


def _unique_path(path: str, taken: set) -> str:
    if path not in taken:
        return path
    stem, dot, ext = path.rpartition(".")
    counter = 2
    while True:
        candidate = f"{stem}-{counter}.{ext}" if dot else f"{path}-{counter}"
        if candidate not in taken:
            return candidate
        counter += 1


def parse_project_structure(raw_response: str, framework: str) -> Dict[str, Any]:
    """
    Fallback project parser used when the reply holds no usable JSON.

    Every fenced block becomes one file. A block mentioning package.json is
    named package.json; React-looking blocks become componentN.tsx (nextjs)
    or componentN.jsx; anything else is fileN.<ext>.

    Args:
        raw_response: Model reply
        framework: Requested framework

    Returns:
        Project dict with name, framework, structure, setupInstructions, dependencies
    """
    structure = []
    taken = set()

    for index, block in enumerate(extract_code_blocks(raw_response), start=1):
        content = block.body.strip()

        if "package.json" in content:
            path = "package.json"
        elif "import React" in content or "export default" in content:
            path = f"component{index}.{'tsx' if framework == 'nextjs' else 'jsx'}"
        else:
            path = f"file{index}.{extension_for_language(block.language)}"

        path = _unique_path(path, taken)
        taken.add(path)
        structure.append({
            "path": path,
            "type": "file",
            "content": content,
            "language": block.language,
        })

    logger.info(f"Fallback parser extracted {len(structure)} files")
    return {
        "name": "Generated Project",
        "framework": framework,
        "structure": structure,
        "setupInstructions": "Extracted from AI response",
        "dependencies": {},
    }


def parse_fix_response(raw_response: str) -> Dict[str, Any]:
    """Fallback fix parser: first fenced block is the fixed code, else the whole reply."""
    blocks = extract_code_blocks(raw_response)
    fixed = blocks[0].body.strip() if blocks else raw_response
    result = {"fixedCode": fixed, **DEFAULT_FIX_FIELDS}
    result["changesMade"] = list(DEFAULT_FIX_FIELDS["changesMade"])
    return result
