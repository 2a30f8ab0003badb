"""
Парсер шаблонов с рекурсивным спуском.

Преобразует последовательность токенов в AST. Инструкции разбираются
по грамматике тегов, выражения — по таблице приоритетов.

Грамматика выражений (от низшего приоритета к высшему):
expression  → or_expr ("if" or_expr ("else" expression)?)?
or_expr     → and_expr ("or" and_expr)*
and_expr    → not_expr ("and" not_expr)*
not_expr    → "not" not_expr | compare
compare     → additive (cmp_op additive | "is" "not"? NAME args?)*
additive    → multiplicative (("+" | "-" | "~") multiplicative)*
multiplicative → power (("*" | "/" | "//" | "%") power)*
power       → unary ("**" power)?
unary       → ("-" | "+") unary | filtered
filtered    → postfix ("|" NAME args?)*
postfix     → primary ("(" args ")" | "." NAME | "[" subscript "]")*
primary     → literal | NAME | "(" expression ")" | "[" ... "]" | "{" ... "}"
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

from . import nodes
from .errors import ParseError
from .lexer import tokenize_template
from .tokens import Token, TokenType

_COMPARE_OPS = {'==', '!=', '<', '>', '<=', '>='}
_ADDITIVE_OPS = {'+', '-', '~'}
_MULTIPLICATIVE_OPS = {'*', '/', '//', '%'}


class TemplateParser:
    """
    Рекурсивный парсер для шаблонов.

    Обрабатывает последовательность токенов и строит AST, корректно
    обрабатывая вложенные конструкции и закрывающие теги.
    """

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.position = 0
        self._block_names: set[str] = set()
        self._tag_parsers: Dict[str, Callable[[Token], nodes.Stmt]] = {
            'if': self._parse_if,
            'for': self._parse_for,
            'set': self._parse_set,
            'block': self._parse_block,
            'extends': self._parse_extends,
            'include': self._parse_include,
            'import': self._parse_import,
            'from': self._parse_from_import,
            'macro': self._parse_macro,
            'filter': self._parse_filter_block,
        }

    def parse(self) -> nodes.Root:
        """
        Парсит всю последовательность токенов в AST.

        Returns:
            Корневой узел AST

        Raises:
            ParseError: При ошибке синтаксического анализа
        """
        body, end_tag = self._parse_body(())
        if end_tag is not None:
            raise ParseError(f"Unexpected '{end_tag.value}' tag", end_tag.line, end_tag.column)
        return nodes.Root(children=body, line=1, column=1)

    # ======= Инструкции =======

    def _parse_body(self, end_tags: Tuple[str, ...]) -> Tuple[nodes.Body, Optional[Token]]:
        """
        Парсит последовательность инструкций до одного из закрывающих тегов.

        Returns:
            Кортеж (узлы тела, токен имени закрывающего тега или None при EOF).
            Закрывающий тег потребляется вместе с именем, но не с '%}'.
        """
        body: List[nodes.Stmt] = []

        while not self._is_at_end():
            token = self._current_token()

            if token.type == TokenType.TEXT:
                self._advance()
                body.append(nodes.TextNode(token.value, line=token.line, column=token.column))

            elif token.type == TokenType.VARIABLE_START:
                self._advance()
                expr = self._parse_expression()
                self._expect(TokenType.VARIABLE_END, "Expected '}}' after expression")
                body.append(nodes.Output(expr, line=token.line, column=token.column))

            elif token.type == TokenType.BLOCK_START:
                self._advance()
                name_token = self._current_token()
                if name_token.type not in (TokenType.NAME, TokenType.KEYWORD):
                    raise ParseError("Expected tag name", name_token.line, name_token.column)
                tag = name_token.value

                if tag in end_tags:
                    self._advance()
                    return tuple(body), name_token

                parser_func = self._tag_parsers.get(tag)
                if parser_func is None:
                    if tag.startswith('end') or tag in ('else', 'elif'):
                        raise ParseError(f"Unexpected '{tag}' tag", name_token.line, name_token.column)
                    raise ParseError(f"Unknown tag '{tag}'", name_token.line, name_token.column)

                self._advance()
                body.append(parser_func(name_token))

            else:
                raise ParseError(f"Unexpected token '{token.value}'", token.line, token.column)

        if end_tags:
            eof = self._current_token()
            expected = " or ".join(f"'{t}'" for t in end_tags)
            raise ParseError(f"Unexpected end of template, expected {expected}", eof.line, eof.column)

        return tuple(body), None

    def _parse_if(self, tag: Token) -> nodes.If:
        """{% if cond %}...{% elif cond %}...{% else %}...{% endif %}"""
        cond = self._parse_expression()
        self._expect_block_end()
        body, end = self._parse_body(('elif', 'else', 'endif'))

        else_body: nodes.Body = ()
        if end.value == 'elif':
            # elif разворачивается во вложенный If, который сам поглощает endif
            else_body = (self._parse_if(end),)
        elif end.value == 'else':
            self._expect_block_end()
            else_body, _ = self._parse_body(('endif',))
            self._expect_block_end()
        else:
            self._expect_block_end()

        return nodes.If(cond, body, else_body, line=tag.line, column=tag.column)

    def _parse_for(self, tag: Token) -> nodes.For:
        """{% for a[, b] in iterable %}...{% else %}...{% endfor %}"""
        targets = [self._expect_name("Expected loop variable name").value]
        while self._match(TokenType.COMMA):
            targets.append(self._expect_name("Expected loop variable name").value)

        if not self._match_keyword('in'):
            current = self._current_token()
            raise ParseError("Expected 'in' in for loop", current.line, current.column)

        iterable = self._parse_expression()
        self._expect_block_end()

        body, end = self._parse_body(('else', 'endfor'))
        else_body: nodes.Body = ()
        self._expect_block_end()
        if end.value == 'else':
            else_body, _ = self._parse_body(('endfor',))
            self._expect_block_end()

        return nodes.For(tuple(targets), iterable, body, else_body, line=tag.line, column=tag.column)

    def _parse_set(self, tag: Token) -> nodes.Set:
        """{% set a, b = expr %} или блочная форма {% set a %}...{% endset %}"""
        targets = [self._expect_name("Expected variable name after 'set'").value]
        while self._match(TokenType.COMMA):
            targets.append(self._expect_name("Expected variable name").value)

        if self._match_operator('='):
            value = self._parse_expression()
            self._expect_block_end()
            return nodes.Set(tuple(targets), value, line=tag.line, column=tag.column)

        self._expect_block_end()
        body, _ = self._parse_body(('endset',))
        self._expect_block_end()
        return nodes.Set(tuple(targets), None, body, line=tag.line, column=tag.column)

    def _parse_block(self, tag: Token) -> nodes.Block:
        """{% block name %}...{% endblock [name] %}"""
        name_token = self._expect_name("Expected block name")
        name = name_token.value
        if name in self._block_names:
            raise ParseError(f"Block '{name}' defined twice", name_token.line, name_token.column)
        self._block_names.add(name)
        self._expect_block_end()
        body, _ = self._parse_body(('endblock',))

        closing = self._current_token()
        if closing.type == TokenType.NAME:
            self._advance()
            if closing.value != name:
                raise ParseError(
                    f"Mismatched endblock: expected '{name}', got '{closing.value}'",
                    closing.line, closing.column
                )
        self._expect_block_end()
        return nodes.Block(name, body, line=tag.line, column=tag.column)

    def _parse_extends(self, tag: Token) -> nodes.Extends:
        template = self._parse_expression()
        self._expect_block_end()
        return nodes.Extends(template, line=tag.line, column=tag.column)

    def _parse_include(self, tag: Token) -> nodes.Include:
        """{% include expr [ignore missing] %}"""
        template = self._parse_expression()
        ignore_missing = False
        current = self._current_token()
        if current.type == TokenType.NAME and current.value == 'ignore':
            self._advance()
            missing = self._current_token()
            if missing.type != TokenType.NAME or missing.value != 'missing':
                raise ParseError("Expected 'missing' after 'ignore'", missing.line, missing.column)
            self._advance()
            ignore_missing = True
        self._expect_block_end()
        return nodes.Include(template, ignore_missing, line=tag.line, column=tag.column)

    def _parse_import(self, tag: Token) -> nodes.Import:
        """{% import expr as alias %}"""
        template = self._parse_expression()
        self._expect_name_value('as', "Expected 'as' in import")
        alias = self._expect_name("Expected alias name after 'as'").value
        self._expect_block_end()
        return nodes.Import(template, alias, line=tag.line, column=tag.column)

    def _parse_from_import(self, tag: Token) -> nodes.FromImport:
        """{% from expr import name [as alias], ... %}"""
        template = self._parse_expression()
        self._expect_name_value('import', "Expected 'import' after template name")

        names: List[Tuple[str, Optional[str]]] = []
        while True:
            name = self._expect_name("Expected name to import").value
            alias: Optional[str] = None
            current = self._current_token()
            if current.type == TokenType.NAME and current.value == 'as':
                self._advance()
                alias = self._expect_name("Expected alias name after 'as'").value
            names.append((name, alias))
            if not self._match(TokenType.COMMA):
                break

        self._expect_block_end()
        return nodes.FromImport(template, tuple(names), line=tag.line, column=tag.column)

    def _parse_macro(self, tag: Token) -> nodes.Macro:
        """{% macro name(a, b, c="default") %}...{% endmacro [name] %}"""
        name = self._expect_name("Expected macro name").value
        self._expect(TokenType.LPAREN, "Expected '(' after macro name")

        params: List[str] = []
        defaults: List[Tuple[str, nodes.Expr]] = []
        while not self._match(TokenType.RPAREN):
            if params:
                self._expect(TokenType.COMMA, "Expected ',' between macro parameters")
            param = self._expect_name("Expected parameter name").value
            if param in params:
                raise ParseError(f"Duplicate parameter '{param}' in macro '{name}'", tag.line, tag.column)
            params.append(param)
            if self._match_operator('='):
                defaults.append((param, self._parse_expression()))

        self._expect_block_end()
        body, _ = self._parse_body(('endmacro',))
        closing = self._current_token()
        if closing.type == TokenType.NAME and closing.value == name:
            self._advance()
        self._expect_block_end()
        return nodes.Macro(name, tuple(params), tuple(defaults), body, line=tag.line, column=tag.column)

    def _parse_filter_block(self, tag: Token) -> nodes.FilterBlock:
        """{% filter name(args) %}...{% endfilter %}"""
        name = self._expect_name("Expected filter name").value
        args: Tuple[nodes.Expr, ...] = ()
        if self._match(TokenType.LPAREN):
            args, _ = self._parse_call_args()
        self._expect_block_end()
        body, _ = self._parse_body(('endfilter',))
        self._expect_block_end()
        return nodes.FilterBlock(name, args, body, line=tag.line, column=tag.column)

    # ======= Выражения =======

    def _parse_expression(self) -> nodes.Expr:
        """Парсит полное выражение (включая условное a if b else c)."""
        start = self._current_token()
        expr = self._parse_or()

        if self._match_keyword('if'):
            cond = self._parse_or()
            else_: Optional[nodes.Expr] = None
            if self._match_keyword('else'):
                else_ = self._parse_expression()
            return nodes.InlineIf(cond, expr, else_, line=start.line, column=start.column)

        return expr

    def _parse_or(self) -> nodes.Expr:
        """Парсит выражение с оператором or (низший приоритет)."""
        left = self._parse_and()
        while True:
            token = self._current_token()
            if not self._match_keyword('or'):
                return left
            right = self._parse_and()
            left = nodes.Or(left, right, line=token.line, column=token.column)

    def _parse_and(self) -> nodes.Expr:
        """Парсит выражение с оператором and."""
        left = self._parse_not()
        while True:
            token = self._current_token()
            if not self._match_keyword('and'):
                return left
            right = self._parse_not()
            left = nodes.And(left, right, line=token.line, column=token.column)

    def _parse_not(self) -> nodes.Expr:
        """Парсит унарный not (правая ассоциативность)."""
        token = self._current_token()
        if self._match_keyword('not'):
            return nodes.Not(self._parse_not(), line=token.line, column=token.column)
        return self._parse_compare()

    def _parse_compare(self) -> nodes.Expr:
        """Парсит цепочку сравнений, in/not in и проверки is."""
        start = self._current_token()
        expr = self._parse_additive()
        ops: List[str] = []
        rights: List[nodes.Expr] = []

        while True:
            token = self._current_token()
            if token.type == TokenType.OPERATOR and token.value in _COMPARE_OPS:
                self._advance()
                ops.append(token.value)
                rights.append(self._parse_additive())
            elif self._match_keyword('in'):
                ops.append('in')
                rights.append(self._parse_additive())
            elif self._check_keyword('not') and self._check_keyword('in', offset=1):
                self._advance()
                self._advance()
                ops.append('not in')
                rights.append(self._parse_additive())
            elif self._check_keyword('is'):
                if ops:
                    expr = nodes.Compare(expr, tuple(ops), tuple(rights), line=start.line, column=start.column)
                    ops, rights = [], []
                expr = self._parse_is_test(expr)
            else:
                break

        if ops:
            return nodes.Compare(expr, tuple(ops), tuple(rights), line=start.line, column=start.column)
        return expr

    def _parse_is_test(self, target: nodes.Expr) -> nodes.IsTest:
        """Парсит хвост 'is [not] name[(args)]'."""
        token = self._advance()
        negated = self._match_keyword('not')
        name_token = self._current_token()
        if name_token.type not in (TokenType.NAME, TokenType.NONE, TokenType.BOOLEAN):
            raise ParseError("Expected test name after 'is'", name_token.line, name_token.column)
        self._advance()
        name = name_token.value.lower() if name_token.type != TokenType.NAME else name_token.value

        args: Tuple[nodes.Expr, ...] = ()
        if self._match(TokenType.LPAREN):
            args, _ = self._parse_call_args()
        elif self._starts_operand():
            # 'x is divisibleby 3': один аргумент без скобок
            args = (self._parse_additive(),)
        return nodes.IsTest(name, target, args, negated, line=token.line, column=token.column)

    def _parse_additive(self) -> nodes.Expr:
        left = self._parse_multiplicative()
        while True:
            token = self._current_token()
            if token.type != TokenType.OPERATOR or token.value not in _ADDITIVE_OPS:
                return left
            self._advance()
            right = self._parse_multiplicative()
            left = nodes.BinOp(token.value, left, right, line=token.line, column=token.column)

    def _parse_multiplicative(self) -> nodes.Expr:
        left = self._parse_power()
        while True:
            token = self._current_token()
            if token.type != TokenType.OPERATOR or token.value not in _MULTIPLICATIVE_OPS:
                return left
            self._advance()
            right = self._parse_power()
            left = nodes.BinOp(token.value, left, right, line=token.line, column=token.column)

    def _parse_power(self) -> nodes.Expr:
        """Возведение в степень, правоассоциативно."""
        base = self._parse_unary()
        token = self._current_token()
        if self._match_operator('**'):
            exponent = self._parse_power()
            return nodes.BinOp('**', base, exponent, line=token.line, column=token.column)
        return base

    def _parse_unary(self) -> nodes.Expr:
        token = self._current_token()
        if token.type == TokenType.OPERATOR and token.value in ('-', '+'):
            self._advance()
            return nodes.UnaryOp(token.value, self._parse_unary(), line=token.line, column=token.column)
        return self._parse_filtered()

    def _parse_filtered(self) -> nodes.Expr:
        """Применение фильтров: левоассоциативно, ниже вызова и доступа к членам."""
        expr = self._parse_postfix()
        while True:
            token = self._current_token()
            if not self._match_operator('|'):
                return expr
            name = self._expect_name("Expected filter name after '|'").value
            args: Tuple[nodes.Expr, ...] = ()
            kwargs: Tuple[Tuple[str, nodes.Expr], ...] = ()
            if self._match(TokenType.LPAREN):
                args, kwargs = self._parse_call_args()
            expr = nodes.FilterCall(name, expr, args, kwargs, line=token.line, column=token.column)

    def _parse_postfix(self) -> nodes.Expr:
        """Вызовы, доступ через точку и квадратные скобки."""
        expr = self._parse_primary()
        while True:
            token = self._current_token()
            if self._match(TokenType.LPAREN):
                args, kwargs = self._parse_call_args()
                expr = nodes.FunCall(expr, args, kwargs, line=token.line, column=token.column)
            elif self._match(TokenType.DOT):
                key_token = self._current_token()
                if key_token.type == TokenType.INT:
                    key: nodes.Expr = nodes.Literal(int(key_token.value), line=key_token.line, column=key_token.column)
                elif key_token.type in (TokenType.NAME, TokenType.KEYWORD, TokenType.BOOLEAN, TokenType.NONE):
                    key = nodes.Literal(key_token.value, line=key_token.line, column=key_token.column)
                else:
                    raise ParseError("Expected attribute name after '.'", key_token.line, key_token.column)
                self._advance()
                expr = nodes.LookupAttr(expr, key, line=token.line, column=token.column)
            elif self._match(TokenType.LBRACKET):
                key = self._parse_subscript()
                self._expect(TokenType.RBRACKET, "Expected ']' after subscript")
                expr = nodes.LookupAttr(expr, key, line=token.line, column=token.column)
            else:
                return expr

    def _parse_subscript(self) -> nodes.Expr:
        """Индекс [expr] или срез [start:stop:step]."""
        token = self._current_token()
        start: Optional[nodes.Expr] = None
        if token.type != TokenType.COLON:
            start = self._parse_expression()
            if not self._check(TokenType.COLON):
                return start

        parts: List[Optional[nodes.Expr]] = [start]
        while self._match(TokenType.COLON):
            if self._check(TokenType.COLON) or self._check(TokenType.RBRACKET):
                parts.append(None)
            else:
                parts.append(self._parse_expression())
        if len(parts) > 3:
            raise ParseError("Too many ':' in slice", token.line, token.column)
        parts.extend([None] * (3 - len(parts)))
        return nodes.Slice(parts[0], parts[1], parts[2], line=token.line, column=token.column)

    def _parse_primary(self) -> nodes.Expr:
        """Парсит первичное выражение (литералы, имена, группы, коллекции)."""
        token = self._current_token()
        pos = {"line": token.line, "column": token.column}

        if token.type == TokenType.STRING:
            self._advance()
            value = token.value
            # Соседние строковые литералы склеиваются: "a" "b"
            while self._check(TokenType.STRING):
                value += self._advance().value
            return nodes.Literal(value, **pos)

        if token.type == TokenType.INT:
            self._advance()
            return nodes.Literal(int(token.value), **pos)

        if token.type == TokenType.FLOAT:
            self._advance()
            return nodes.Literal(float(token.value), **pos)

        if token.type == TokenType.BOOLEAN:
            self._advance()
            return nodes.Literal(token.value.lower() == 'true', **pos)

        if token.type == TokenType.NONE:
            self._advance()
            return nodes.Literal(None, **pos)

        if token.type == TokenType.NAME:
            self._advance()
            if token.value == 'super' and self._check(TokenType.LPAREN):
                self._advance()
                self._expect(TokenType.RPAREN, "super() takes no arguments")
                return nodes.Super(**pos)
            return nodes.Symbol(token.value, **pos)

        if self._match(TokenType.LPAREN):
            expr = self._parse_expression()
            self._expect(TokenType.RPAREN, "Expected ')' after grouped expression")
            return nodes.Group(expr, **pos)

        if self._match(TokenType.LBRACKET):
            items: List[nodes.Expr] = []
            while not self._match(TokenType.RBRACKET):
                if items:
                    self._expect(TokenType.COMMA, "Expected ',' between list items")
                    if self._match(TokenType.RBRACKET):
                        break
                items.append(self._parse_expression())
            return nodes.ArrayLiteral(tuple(items), **pos)

        if self._match(TokenType.LBRACE):
            pairs: List[Tuple[nodes.Expr, nodes.Expr]] = []
            while not self._match(TokenType.RBRACE):
                if pairs:
                    self._expect(TokenType.COMMA, "Expected ',' between dict items")
                    if self._match(TokenType.RBRACE):
                        break
                key = self._parse_dict_key()
                self._expect(TokenType.COLON, "Expected ':' after dict key")
                pairs.append((key, self._parse_expression()))
            return nodes.DictLiteral(tuple(pairs), **pos)

        if token.type == TokenType.EOF:
            raise ParseError("Unexpected end of expression", token.line, token.column)
        raise ParseError(f"Unexpected token '{token.value}'", token.line, token.column)

    def _parse_dict_key(self) -> nodes.Expr:
        """Ключ словаря: голый идентификатор становится строкой."""
        token = self._current_token()
        if token.type == TokenType.NAME and self._check(TokenType.COLON, offset=1):
            self._advance()
            return nodes.Literal(token.value, line=token.line, column=token.column)
        return self._parse_expression()

    def _parse_call_args(self) -> Tuple[Tuple[nodes.Expr, ...], Tuple[Tuple[str, nodes.Expr], ...]]:
        """
        Парсит аргументы вызова после '(' до ')' включительно.

        Returns:
            Кортеж (позиционные аргументы, именованные аргументы)
        """
        args: List[nodes.Expr] = []
        kwargs: List[Tuple[str, nodes.Expr]] = []

        while not self._match(TokenType.RPAREN):
            if args or kwargs:
                self._expect(TokenType.COMMA, "Expected ',' between arguments")
                if self._match(TokenType.RPAREN):
                    break

            token = self._current_token()
            next_token = self._peek(1)
            if (token.type == TokenType.NAME and next_token.type == TokenType.OPERATOR
                    and next_token.value == '='):
                self._advance()
                self._advance()
                kwargs.append((token.value, self._parse_expression()))
            else:
                if kwargs:
                    raise ParseError("Positional argument follows keyword argument", token.line, token.column)
                args.append(self._parse_expression())

        return tuple(args), tuple(kwargs)

    # ======= Вспомогательные методы для работы с токенами =======

    def _current_token(self) -> Token:
        """Возвращает текущий токен без продвижения позиции."""
        return self._peek(0)

    def _peek(self, offset: int) -> Token:
        index = self.position + offset
        if index >= len(self.tokens):
            # Возвращаем EOF если вышли за границы
            last = self.tokens[-1] if self.tokens else None
            if last is not None and last.type == TokenType.EOF:
                return last
            return Token(TokenType.EOF, "", 0, last.line if last else 1, last.column if last else 1)
        return self.tokens[index]

    def _is_at_end(self) -> bool:
        return self._current_token().type == TokenType.EOF

    def _advance(self) -> Token:
        """Продвигает позицию и возвращает предыдущий токен."""
        token = self._current_token()
        if not self._is_at_end():
            self.position += 1
        return token

    def _check(self, token_type: TokenType, offset: int = 0) -> bool:
        return self._peek(offset).type == token_type

    def _check_keyword(self, keyword: str, offset: int = 0) -> bool:
        token = self._peek(offset)
        return token.type == TokenType.KEYWORD and token.value == keyword

    def _match(self, token_type: TokenType) -> bool:
        """Проверяет и потребляет токен указанного типа."""
        if self._check(token_type):
            self._advance()
            return True
        return False

    def _match_keyword(self, keyword: str) -> bool:
        """Проверяет и потребляет ключевое слово."""
        if self._check_keyword(keyword):
            self._advance()
            return True
        return False

    def _match_operator(self, operator: str) -> bool:
        token = self._current_token()
        if token.type == TokenType.OPERATOR and token.value == operator:
            self._advance()
            return True
        return False

    def _starts_operand(self) -> bool:
        return self._current_token().type in (
            TokenType.INT, TokenType.FLOAT, TokenType.STRING, TokenType.NAME,
            TokenType.BOOLEAN, TokenType.NONE,
        )

    def _expect(self, token_type: TokenType, error_message: str) -> Token:
        """Потребляет токен указанного типа или выбрасывает ошибку."""
        current = self._current_token()
        if current.type == token_type:
            return self._advance()
        raise ParseError(error_message, current.line, current.column)

    def _expect_name(self, error_message: str) -> Token:
        return self._expect(TokenType.NAME, error_message)

    def _expect_name_value(self, value: str, error_message: str) -> Token:
        current = self._current_token()
        if current.type == TokenType.NAME and current.value == value:
            return self._advance()
        raise ParseError(error_message, current.line, current.column)

    def _expect_block_end(self) -> Token:
        return self._expect(TokenType.BLOCK_END, "Expected '%}' to close tag")


def parse_template(text: str) -> nodes.Root:
    """
    Удобная функция для парсинга шаблона из текста.

    Args:
        text: Исходный текст шаблона

    Returns:
        Корневой узел AST

    Raises:
        LexError: При ошибке лексического анализа
        ParseError: При ошибке синтаксического анализа
    """
    tokens = tokenize_template(text)
    parser = TemplateParser(tokens)
    return parser.parse()


__all__ = ["TemplateParser", "parse_template"]
