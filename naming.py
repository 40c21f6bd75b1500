import re
from typing import Optional

KNOWN_EXT = {
    "javascript": "js",
    "typescript": "ts",
    "typescriptreact": "tsx",
    "javascriptreact": "jsx",
    "ts": "ts",
    "tsx": "tsx",
    "js": "js",
    "jsx": "jsx",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "python": "py",
    "py": "py",
    "go": "go",
    "rust": "rs",
    "rs": "rs",
    "java": "java",
    "c": "c",
    "c++": "cpp",
    "cpp": "cpp",
    "php": "php",
    "ruby": "rb",
    "rb": "rb",
    "json": "json",
    "md": "md",
}


def kebab_case(value: str) -> str:
    value = re.sub(r"['\"`]", "", value.strip())
    value = re.sub(r"[^a-zA-Z0-9]+", "-", value)
    return value.strip("-").lower()


def sanitize_file_path(path: str) -> str:
    """Normalize a workspace path to ``/kebab/segments/name.ext``."""
    parts = [p for p in path.split("/") if p]
    cleaned = []
    for i, part in enumerate(parts):
        if i == len(parts) - 1 and "." in part:
            name, ext = part.rsplit(".", 1)
            cleaned.append(f"{kebab_case(name)}.{ext.lower()}")
        else:
            cleaned.append(kebab_case(part))
    return "/" + "/".join(cleaned)


def ext_for_language(language: Optional[str]) -> str:
    if not language:
        return "txt"
    return KNOWN_EXT.get(language.lower(), "txt")


def infer_base_name_from_content(language: Optional[str], content: str) -> str:
    lang = (language or "").lower()
    if "html" in lang:
        return "index"
    if "css" in lang:
        return "styles"
    if "python" in lang:
        if re.search(r"def\s+main\s*\(", content):
            return "main"
        return "script"
    if "javascriptreact" in lang or "tsx" in lang or "jsx" in lang:
        m = (re.search(r"export\s+default\s+function\s+([A-Z][A-Za-z0-9_]*)", content)
             or re.search(r"function\s+([A-Z][A-Za-z0-9_]*)\s*\(", content))
        if m:
            return m.group(1)
        return "component"
    if "typescript" in lang or "javascript" in lang or lang in ("js", "ts"):
        if re.search(r"import\s+express", content):
            return "server"
        if "console.log" in content:
            return "script"
        return "index"
    if "go" in lang:
        return "main"
    if "rust" in lang or lang == "rs":
        return "main"
    if "java" in lang:
        return "Main"
    if "php" in lang:
        return "index"
    if "json" in lang:
        return "data"
    if "md" in lang:
        return "readme"
    return "file"


def suggest_file_name(language: Optional[str], content: str, hint: Optional[str] = None) -> str:
    ext = ext_for_language(language)
    base = (kebab_case(hint) if hint else "") or kebab_case(infer_base_name_from_content(language, content))
    return f"{base or 'file'}.{ext}"


def choose_path_for_new_file(language: Optional[str], content: str, hint: Optional[str] = None) -> str:
    file_name = suggest_file_name(language, content, hint)
    lang = (language or "").lower()
    if "html" in lang or "css" in lang:
        return sanitize_file_path(f"/public/{file_name}")
    return sanitize_file_path(f"/src/{file_name}")
