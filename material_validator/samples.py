"""
内置样例：BST 讲义及其两份课程资料，供控制台脚本与测试共用

资料清单文件格式（--materials）：MaterialSource 的 JSON 数组，字段支持 camelCase / snake_case
    [{"id": 1, "title": "BST Lecture Notes", "category": "Data Structures", "fileName": "bst_notes.pdf"}]
"""

from pathlib import Path

from pydantic import TypeAdapter

from material_validator.validator.schemas import MaterialSource

SAMPLE_MATERIALS = [
    MaterialSource(id=1, title="BST Lecture Notes", category="Data Structures", file_name="bst_notes.pdf"),
    MaterialSource(id=2, title="Tree Traversal Slides", category="Algorithms", file_name="traversal.pptx"),
]

SAMPLE_CONTENT = """\
# Binary Search Trees

## Overview
A binary search tree keeps every key in the left subtree smaller than the node key
and every key in the right subtree larger [Source: BST Lecture Notes - Data Structures].

## Implementation

```python
class Node:
    def __init__(self, key):
        self.key = key
        self.left = None
        self.right = None


def insert(root, key):
    if root is None:
        return Node(key)
    if key < root.key:
        root.left = insert(root.left, key)
    else:
        root.right = insert(root.right, key)
    return root
```

An in-order traversal visits the keys in sorted order [Source: Tree Traversal Slides - Algorithms].
"""

_MATERIALS_ADAPTER = TypeAdapter(list[MaterialSource])


def load_materials(path: str | Path) -> list[MaterialSource]:
    """
    读取资料清单 JSON 文件。

    Raises:
        OSError: 文件不可读
        pydantic.ValidationError: 不是 MaterialSource 数组
    """
    return _MATERIALS_ADAPTER.validate_json(Path(path).read_bytes())
