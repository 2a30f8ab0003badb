"""
Лексические типы.

Определяет типы токенов шаблона и сам токен с позиционной информацией.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class TokenType(enum.Enum):
    """Типы токенов в шаблоне."""

    # Текстовый контент между тегами
    TEXT = "TEXT"

    # Разделители
    VARIABLE_START = "VARIABLE_START"        # {{
    VARIABLE_END = "VARIABLE_END"            # }}
    BLOCK_START = "BLOCK_START"              # {%
    BLOCK_END = "BLOCK_END"                  # %}

    # Идентификаторы и литералы
    NAME = "NAME"
    KEYWORD = "KEYWORD"                      # and, or, not, in, is, if, else
    BOOLEAN = "BOOLEAN"                      # true, false
    NONE = "NONE"                            # none, null
    STRING = "STRING"
    INT = "INT"
    FLOAT = "FLOAT"

    # Операторы: + - * / // % ** ~ | = == != < > <= >=
    OPERATOR = "OPERATOR"

    # Пунктуация
    LPAREN = "LPAREN"                        # (
    RPAREN = "RPAREN"                        # )
    LBRACKET = "LBRACKET"                    # [
    RBRACKET = "RBRACKET"                    # ]
    LBRACE = "LBRACE"                        # {
    RBRACE = "RBRACE"                        # }
    COMMA = "COMMA"                          # ,
    DOT = "DOT"                              # .
    COLON = "COLON"                          # :

    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    """
    Токен с позиционной информацией для точной диагностики ошибок.
    """
    type: TokenType
    value: str
    position: int        # Позиция в исходном тексте
    line: int           # Номер строки (начиная с 1)
    column: int         # Номер колонки (начиная с 1)

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


__all__ = ["TokenType", "Token"]
