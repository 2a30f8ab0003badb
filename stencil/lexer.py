"""
Лексический анализатор шаблонов.

Токенизирует исходный текст шаблона за один проход, переключаясь между
текстовым режимом (литеральный вывод) и режимом кода внутри
{{ ... }} / {% ... %}. Комментарии {# ... #} отбрасываются.
"""

from __future__ import annotations

import re
from dataclasses import replace
from typing import List, Optional

from .errors import LexError
from .tokens import Token, TokenType


class TemplateLexer:
    """
    Лексический анализатор шаблонов.

    Разбивает исходный текст на токены, учитывая контексты:
    - обычный текст (сохраняется побайтно)
    - внутри выражений {{ ... }}
    - внутри тегов {% ... %}
    - внутри комментариев {# ... #} (не порождают токенов)

    Поддерживает управление пробелами ({%- ... -%}) и блоки {% raw %}.
    """

    _TAG_OPEN = re.compile(r'\{[{%#]')
    _RAW_START = re.compile(r'\{%(-?)\s*raw\s*(-?)%\}')
    _RAW_END = re.compile(r'\{%(-?)\s*endraw\s*(-?)%\}')

    _WHITESPACE = re.compile(r'\s+')
    _NAME = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
    _NUMBER = re.compile(r'\d+(\.\d+)?')
    _INTEGER = re.compile(r'\d+')

    # Порядок важен: сначала двухсимвольные операторы
    _OPERATORS = (
        '**', '//', '==', '!=', '<=', '>=',
        '+', '-', '*', '/', '%', '~', '|', '=', '<', '>',
    )

    _PUNCTUATION = {
        '(': TokenType.LPAREN,
        ')': TokenType.RPAREN,
        '[': TokenType.LBRACKET,
        ']': TokenType.RBRACKET,
        '{': TokenType.LBRACE,
        '}': TokenType.RBRACE,
        ',': TokenType.COMMA,
        '.': TokenType.DOT,
        ':': TokenType.COLON,
    }

    _KEYWORDS = {'and', 'or', 'not', 'in', 'is', 'if', 'else'}
    _BOOLEANS = {'true', 'false', 'True', 'False'}
    _NONES = {'none', 'None', 'null'}

    _ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '\\': '\\', '"': '"', "'": "'"}

    def __init__(self, text: str):
        self.text = text
        self.position = 0
        self.line = 1
        self.column = 1
        self.length = len(text)
        self.tokens: List[Token] = []
        # Выставляется закрывающим разделителем с '-' (например, -%})
        self._lstrip_next = False

    def tokenize(self) -> List[Token]:
        """
        Токенизирует весь исходный текст и возвращает список токенов.

        Raises:
            LexError: При незакрытой строке, теге или комментарии
        """
        self.tokens = []

        while self.position < self.length:
            if self.text.startswith('{%', self.position) and self._try_raw_block():
                continue

            opener = self.text[self.position:self.position + 2]
            if opener == '{#':
                self._skip_comment()
            elif opener == '{{':
                self._lex_tag(TokenType.VARIABLE_START, TokenType.VARIABLE_END, '}}')
            elif opener == '{%':
                self._lex_tag(TokenType.BLOCK_START, TokenType.BLOCK_END, '%}')
            else:
                self._lex_text()

        self.tokens.append(Token(TokenType.EOF, "", self.position, self.line, self.column))
        return self.tokens

    # ======= Текстовый режим =======

    def _lex_text(self) -> None:
        """Накапливает литеральный текст до ближайшего открывающего разделителя."""
        match = self._TAG_OPEN.search(self.text, self.position)
        end = match.start() if match else self.length

        if self._lstrip_next:
            self._lstrip_next = False
            ws = self._WHITESPACE.match(self.text, self.position, end)
            if ws:
                self._advance(len(ws.group(0)))

        if self.position < end:
            self._emit(TokenType.TEXT, self.text[self.position:end])

    def _try_raw_block(self) -> bool:
        """Обрабатывает {% raw %}...{% endraw %}: содержимое выводится как есть."""
        start = self._RAW_START.match(self.text, self.position)
        if not start:
            return False

        end = self._RAW_END.search(self.text, start.end())
        if not end:
            raise LexError(
                "Unterminated raw block, expected '{% endraw %}'",
                self.line, self.column, self.position
            )

        if start.group(1):
            self._rstrip_last_text()
        self._lstrip_next = False

        content = self.text[start.end():end.start()]
        if start.group(2):
            content = content.lstrip()
        if end.group(1):
            content = content.rstrip()

        self._advance(start.end() - self.position)
        if content:
            self.tokens.append(Token(TokenType.TEXT, content, self.position, self.line, self.column))
        self._advance(end.end() - self.position)

        self._lstrip_next = bool(end.group(2))
        return True

    def _skip_comment(self) -> None:
        """Пропускает комментарий {# ... #}."""
        start_line, start_column = self.line, self.column
        end = self.text.find('#}', self.position + 2)
        if end == -1:
            raise LexError("Unterminated comment", start_line, start_column, self.position)

        if self.text.startswith('{#-', self.position):
            self._rstrip_last_text()
        self._lstrip_next = end > self.position + 2 and self.text[end - 1] == '-'
        self._advance(end + 2 - self.position)

    # ======= Режим кода =======

    def _lex_tag(self, start_type: TokenType, end_type: TokenType, closer: str) -> None:
        """Токенизирует тег целиком: открывающий разделитель, содержимое, закрывающий."""
        self._lstrip_next = False
        start_line, start_column, start_pos = self.line, self.column, self.position

        opener = self.text[self.position:self.position + 2]
        if self.text.startswith('-', self.position + 2):
            opener += '-'
            self._rstrip_last_text()
        self._emit(start_type, opener)

        brace_depth = 0
        while True:
            ws = self._WHITESPACE.match(self.text, self.position)
            if ws:
                self._advance(len(ws.group(0)))

            if self.position >= self.length:
                raise LexError(
                    f"Unterminated tag, expected '{closer}'",
                    start_line, start_column, start_pos
                )

            if brace_depth == 0:
                if self.text.startswith(closer, self.position):
                    self._emit(end_type, closer)
                    return
                if self.text.startswith('-' + closer, self.position):
                    self._emit(end_type, '-' + closer)
                    self._lstrip_next = True
                    return

            brace_depth = self._lex_code_token(brace_depth)

    def _lex_code_token(self, brace_depth: int) -> int:
        """Извлекает один токен внутри тега. Возвращает новую глубину фигурных скобок."""
        char = self.text[self.position]

        if char in '"\'':
            self._lex_string(char)
            return brace_depth

        if char.isdigit():
            self._lex_number()
            return brace_depth

        match = self._NAME.match(self.text, self.position)
        if match:
            value = match.group(0)
            if value in self._KEYWORDS:
                token_type = TokenType.KEYWORD
            elif value in self._BOOLEANS:
                token_type = TokenType.BOOLEAN
            elif value in self._NONES:
                token_type = TokenType.NONE
            else:
                token_type = TokenType.NAME
            self._emit(token_type, value)
            return brace_depth

        for operator in self._OPERATORS:
            if self.text.startswith(operator, self.position):
                self._emit(TokenType.OPERATOR, operator)
                return brace_depth

        punct_type = self._PUNCTUATION.get(char)
        if punct_type is not None:
            self._emit(punct_type, char)
            if punct_type == TokenType.LBRACE:
                return brace_depth + 1
            if punct_type == TokenType.RBRACE and brace_depth > 0:
                return brace_depth - 1
            return brace_depth

        raise LexError(f"Unexpected character: {char!r}", self.line, self.column, self.position)

    def _lex_string(self, quote: str) -> None:
        """Разбирает строковый литерал в одинарных или двойных кавычках."""
        start_line, start_column, start_pos = self.line, self.column, self.position
        chars: List[str] = []
        pos = self.position + 1

        while pos < self.length:
            char = self.text[pos]
            if char == '\\' and pos + 1 < self.length:
                escaped = self.text[pos + 1]
                chars.append(self._ESCAPES.get(escaped, escaped))
                pos += 2
                continue
            if char == quote:
                self._advance(pos + 1 - self.position)
                self.tokens.append(Token(TokenType.STRING, "".join(chars), start_pos, start_line, start_column))
                return
            chars.append(char)
            pos += 1

        raise LexError("Unterminated string", start_line, start_column, start_pos)

    def _lex_number(self) -> None:
        """Разбирает целое или дробное число. После точки допускается только целое (foo.0)."""
        after_dot = bool(self.tokens) and self.tokens[-1].type == TokenType.DOT
        pattern = self._INTEGER if after_dot else self._NUMBER
        match = pattern.match(self.text, self.position)
        value = match.group(0)
        self._emit(TokenType.FLOAT if '.' in value else TokenType.INT, value)

    # ======= Вспомогательные методы =======

    def _emit(self, token_type: TokenType, value: str) -> Token:
        """Создаёт токен в текущей позиции и продвигает позицию на длину значения."""
        token = Token(token_type, value, self.position, self.line, self.column)
        self.tokens.append(token)
        self._advance(len(value))
        return token

    def _rstrip_last_text(self) -> None:
        """Обрезает хвостовые пробелы у предыдущего текстового токена ({%- ...)."""
        last: Optional[Token] = self.tokens[-1] if self.tokens else None
        if last is None or last.type != TokenType.TEXT:
            return
        stripped = last.value.rstrip()
        if stripped:
            self.tokens[-1] = replace(last, value=stripped)
        else:
            self.tokens.pop()

    def _advance(self, count: int) -> None:
        """
        Перемещает позицию на указанное количество символов,
        обновляя номера строк и колонок.
        """
        for _ in range(count):
            if self.position < self.length:
                if self.text[self.position] == '\n':
                    self.line += 1
                    self.column = 1
                else:
                    self.column += 1
                self.position += 1


def tokenize_template(text: str) -> List[Token]:
    """
    Удобная функция для токенизации шаблона.

    Args:
        text: Исходный текст шаблона

    Returns:
        Список токенов, включая EOF в конце

    Raises:
        LexError: При ошибке лексического анализа
    """
    lexer = TemplateLexer(text)
    return lexer.tokenize()


__all__ = ["TemplateLexer", "tokenize_template"]
