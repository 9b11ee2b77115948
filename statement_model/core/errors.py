# -*- coding: utf-8 -*-
"""
错误与操作结果

- ModelError: 编程错误 / 配置与文件错误（会抛出）
- MutationResult: 结构操作的结果（不抛出，"什么都没变" + 提示信息）
- ValidationResult: 建议性校验结果（由调用方决定是否阻断）
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ModelError(Exception):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": True,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass
class MutationResult:
    """结构操作结果"""
    applied: bool
    message: str = ""
    row_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"applied": self.applied}
        if self.message:
            result["message"] = self.message
        if self.row_id:
            result["row_id"] = self.row_id
        return result


@dataclass
class ValidationResult:
    """校验结果（建议性）"""
    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.errors.append(message)
        self.valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        merged = ValidationResult(
            valid=self.valid and other.valid,
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
        )
        return merged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": self.errors,
            "warnings": self.warnings,
        }
