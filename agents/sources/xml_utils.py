"""
XML 解析辅助函数

基于 ElementTree 做结构化解析，按本地名匹配标签（忽略命名空间 URI），
同时兼容 "prism:doi" 这种带前缀的写法。

整份文档解析失败时，按记录标签把各个块切出来单独解析，
只丢弃坏掉的那一块。
"""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Iterable, Iterator, List, Optional

logger = logging.getLogger(__name__)

_XMLNS_RE = re.compile(r"""\sxmlns(?::[\w.-]+)?\s*=\s*("[^"]*"|'[^']*')""")
_ROOT_TAG_RE = re.compile(r"<(?![?!])[\w:.-]+[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def local_name(tag: str) -> str:
    """'{http://www.w3.org/2005/Atom}entry' -> 'entry'"""
    if not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.rsplit("}", 1)[1]
    return tag


def _tag_local(name: str) -> str:
    """'prism:doi' -> 'doi'"""
    return name.split(":", 1)[1] if ":" in name else name


def _prefix(name: str) -> Optional[str]:
    return name.split(":", 1)[0] if ":" in name else None


def _matches(element: ET.Element, name: str, namespaces: Optional[dict] = None) -> bool:
    if local_name(element.tag) != _tag_local(name):
        return False
    prefix = _prefix(name)
    if prefix is None or not namespaces or prefix not in namespaces:
        return True
    return element.tag == f"{{{namespaces[prefix]}}}{_tag_local(name)}"


def clean_text(text: Optional[str]) -> str:
    """去掉内嵌标签残留并合并空白"""
    if not text:
        return ""
    text = re.sub(r"<[^>]*>", "", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def element_text(element: ET.Element) -> str:
    """元素及其子元素的全部文本"""
    return clean_text("".join(element.itertext()))


def find_children(element: ET.Element, name: str, namespaces: Optional[dict] = None) -> List[ET.Element]:
    """按名称查找所有后代元素（不含自身）"""
    return [child for child in element.iter() if child is not element and _matches(child, name, namespaces)]


def find_first(element: ET.Element, name: str, namespaces: Optional[dict] = None) -> Optional[ET.Element]:
    for child in element.iter():
        if child is not element and _matches(child, name, namespaces):
            return child
    return None


def find_text(element: ET.Element, name: str, namespaces: Optional[dict] = None) -> str:
    """第一个匹配元素的文本，找不到返回空字符串"""
    child = find_first(element, name, namespaces)
    return element_text(child) if child is not None else ""


def find_all_text(element: ET.Element, name: str, namespaces: Optional[dict] = None) -> List[str]:
    return [text for text in (element_text(c) for c in find_children(element, name, namespaces)) if text]


def _root_namespace_decls(xml_text: str) -> str:
    root_match = _ROOT_TAG_RE.search(xml_text)
    if not root_match:
        return ""
    return " ".join(m.group(0).strip() for m in _XMLNS_RE.finditer(root_match.group(0)))


def _split_blocks(xml_text: str, tag: str) -> List[str]:
    pattern = re.compile(rf"<{re.escape(tag)}(?:\s[^>]*)?>[\s\S]*?</{re.escape(tag)}>")
    return pattern.findall(xml_text)


def parse_document(xml_text: str) -> Optional[ET.Element]:
    """解析整份文档，失败返回 None"""
    try:
        return ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.warning(f"XML 文档解析失败，改为逐条解析: {e}")
        return None


def iter_record_elements(xml_text: str, tags: Iterable[str]) -> Iterator[ET.Element]:
    """
    按优先顺序查找记录元素，返回第一个有结果的标签对应的全部元素。

    参数:
        xml_text: 原始 XML
        tags: 候选记录标签（如 ("entry", "item")）

    返回:
        记录元素迭代器。整份文档无法解析时按块逐个解析，坏块被跳过。
    """
    tags = list(tags)
    root = parse_document(xml_text)
    if root is not None:
        for tag in tags:
            found = [el for el in root.iter() if local_name(el.tag) == tag]
            if found:
                logger.debug(f"找到 <{tag}> 元素 {len(found)} 个")
                yield from found
                return
        return

    decls = _root_namespace_decls(xml_text)
    for tag in tags:
        blocks = _split_blocks(xml_text, tag)
        if not blocks:
            continue
        logger.debug(f"逐条解析 <{tag}> 块 {len(blocks)} 个")
        for index, block in enumerate(blocks, 1):
            try:
                wrapper = ET.fromstring(f"<records {decls}>{block}</records>")
            except ET.ParseError as e:
                logger.warning(f"⚠️ 第 {index} 个 <{tag}> 块解析失败，已跳过: {e}")
                continue
            for child in wrapper:
                yield child
        return


def find_total_results(xml_text: str) -> Optional[int]:
    """提取 opensearch:totalResults，找不到返回 None"""
    root = parse_document(xml_text)
    if root is not None:
        for el in root.iter():
            if local_name(el.tag) == "totalResults":
                try:
                    return int((el.text or "").strip())
                except ValueError:
                    return None
        return None
    match = re.search(r"<(?:[\w-]+:)?totalResults[^>]*>\s*(\d+)\s*</(?:[\w-]+:)?totalResults>", xml_text)
    return int(match.group(1)) if match else None
