# =============================================================================
# Calculation Agents — Arithmetic, Units, and Currency
# =============================================================================
#
#   calculator         — arithmetic evaluated locally over a whitelisted AST
#   unit_converter     — length, mass, volume, speed and temperature tables
#   currency_converter — SearxNG's currency answer for "100 USD to EUR"
#
# DESIGN DECISION: Walk the AST, never eval().
# Only numeric literals, + - * / // % **, unary signs, pi/e and a few math
# functions are accepted. Anything else (names, attributes, calls to other
# functions) is rejected before it runs. Exponents are capped so
# "9 ** 9 ** 9" fails fast instead of pinning the event loop.
#
# Like the other tool agents these never call an LLM, and their failures
# come back as low-confidence results.
# =============================================================================

from __future__ import annotations

import ast
import json
import math
import operator
import re
from dataclasses import dataclass

import httpx

from chatmesh.agents.base import BaseAgent
from chatmesh.agents.types import AgentContext, AgentResult, CallAgentFn

CALCULATOR_CONFIDENCE = 0.95
CONVERSION_CONFIDENCE = 0.95
CURRENCY_CONFIDENCE = 0.9
NO_ANSWER_CONFIDENCE = 0.2
TOOL_FAILURE_CONFIDENCE = 0.1

MAX_EXPONENT = 1000


def format_number(value: float) -> str:
    """10 significant digits, no trailing ".0" for whole numbers."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        value = int(value)
    if isinstance(value, int):
        return str(value)
    return f"{value:.10g}"


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPERATORS = {ast.UAdd: operator.pos, ast.USub: operator.neg}
_FUNCTIONS = {
    "sqrt": math.sqrt,
    "abs": abs,
    "round": round,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
}
_CONSTANTS = {"pi": math.pi, "e": math.e}

# Leading phrases people wrap around an expression
_CALC_PREFIXES: tuple[str, ...] = (
    "what is", "what's", "whats", "calculate", "calc", "compute", "solve",
    "cuánto es", "cuanto es", "calcular", "calcula",
)


def _evaluate(node: ast.AST) -> float:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        raise ValueError(f"Unsupported literal: {node.value!r}")
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left, right = _evaluate(node.left), _evaluate(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError("Exponent is too large")
        return _BINARY_OPERATORS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand))
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and not node.keywords
    ):
        return _FUNCTIONS[node.func.id](*(_evaluate(arg) for arg in node.args))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def evaluate_expression(expression: str) -> float:
    """
    Evaluate an arithmetic expression safely.

    Accepts "^" for powers and the × ÷ signs. Raises ValueError for
    anything that isn't plain arithmetic; ZeroDivisionError and
    OverflowError propagate from the arithmetic itself.
    """
    normalised = expression.replace("^", "**").replace("×", "*").replace("÷", "/")
    try:
        tree = ast.parse(normalised.strip(), mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Invalid expression: {expression}") from e
    return _evaluate(tree.body)


def extract_expression(text: str) -> str:
    """'What is 2^10?' -> '2^10'"""
    expression = text.strip().lower().lstrip("¿")
    for prefix in _CALC_PREFIXES:
        if expression.startswith(prefix):
            expression = expression[len(prefix):]
            break
    return expression.strip().strip("?=").strip()


class CalculatorAgent(BaseAgent):
    name = "calculator"
    description = "Calculates arithmetic expressions, e.g. '2 + 2' or 'sqrt(16) * 3'."

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        expression = extract_expression(input)
        if not expression:
            return AgentResult.failure("I couldn't see a math expression to calculate.")

        try:
            value = evaluate_expression(expression)
        except ZeroDivisionError:
            return AgentResult.failure("Division by zero is undefined.")
        except (ValueError, TypeError, OverflowError) as e:
            self.logger.warning("Could not evaluate '%s': %s", expression, e)
            return AgentResult.failure(
                "Could not calculate the expression.", TOOL_FAILURE_CONFIDENCE,
            )

        return AgentResult(
            output=f"{expression} = {format_number(value)}",
            confidence=CALCULATOR_CONFIDENCE,
            metadata={"value": value},
        )


# ---------------------------------------------------------------------------
# Unit Converter
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Unit:
    symbol: str
    dimension: str
    # Multiplier to the dimension's base unit (unused for temperature)
    factor: float = 1.0


_UNITS: dict[str, Unit] = {}


def _define(symbol: str, dimension: str, factor: float, *aliases: str) -> None:
    unit = Unit(symbol, dimension, factor)
    for alias in (symbol.lower(), *aliases):
        _UNITS[alias] = unit


# length (metre)
_define("m", "length", 1.0, "meter", "meters", "metre", "metres", "metro", "metros")
_define("km", "length", 1000.0, "kilometer", "kilometers", "kilometre", "kilometres", "kilómetros", "kilometros")
_define("cm", "length", 0.01, "centimeter", "centimeters", "centímetros", "centimetros")
_define("mm", "length", 0.001, "millimeter", "millimeters")
_define("mi", "length", 1609.344, "mile", "miles", "milla", "millas")
_define("yd", "length", 0.9144, "yard", "yards")
_define("ft", "length", 0.3048, "foot", "feet", "pies")
_define("in", "length", 0.0254, "inch", "inches", "pulgadas")
# mass (kilogram)
_define("kg", "mass", 1.0, "kilogram", "kilograms", "kilo", "kilos", "kilogramos")
_define("g", "mass", 0.001, "gram", "grams", "gramos")
_define("mg", "mass", 1e-6, "milligram", "milligrams")
_define("lb", "mass", 0.45359237, "lbs", "pound", "pounds", "libra", "libras")
_define("oz", "mass", 0.028349523125, "ounce", "ounces", "onzas")
_define("t", "mass", 1000.0, "tonne", "tonnes", "ton", "tons", "toneladas")
# volume (litre)
_define("L", "volume", 1.0, "liter", "liters", "litre", "litres", "litro", "litros")
_define("mL", "volume", 0.001, "milliliter", "milliliters", "millilitre", "millilitres")
_define("gal", "volume", 3.785411784, "gallon", "gallons", "galón", "galones")
_define("cup", "volume", 0.2365882365, "cups", "taza", "tazas")
# speed (metre per second)
_define("m/s", "speed", 1.0, "mps")
_define("km/h", "speed", 1000.0 / 3600.0, "kph", "kmh")
_define("mph", "speed", 1609.344 / 3600.0)
_define("kn", "speed", 1852.0 / 3600.0, "knot", "knots", "nudos")
# temperature (bare "degrees" means Celsius)
_define("°C", "temperature", 1.0, "c", "celsius", "centigrade", "centígrados", "degree", "degrees", "grado", "grados")
_define("°F", "temperature", 1.0, "f", "fahrenheit")
_define("K", "temperature", 1.0, "kelvin", "kelvins")

ABSOLUTE_ZERO_C = -273.15

# "convert 30 degrees Celsius to Fahrenheit", "10kg to lb", "5 millas en km"
_CONVERSION = re.compile(
    r"(-?\d+(?:[.,]\d+)?)\s*(?:degrees?\s+|grados?\s+)?([a-zA-Z°/áéíóú]+)"
    r"\s+(?:to|in|into|a|en)\s+(?:degrees?\s+|grados?\s+)?([a-zA-Z°/áéíóú]+)",
    re.IGNORECASE,
)


def _to_celsius(value: float, symbol: str) -> float:
    if symbol == "°F":
        return (value - 32) * 5 / 9
    if symbol == "K":
        return value + ABSOLUTE_ZERO_C
    return value


def _from_celsius(value: float, symbol: str) -> float:
    if symbol == "°F":
        return value * 9 / 5 + 32
    if symbol == "K":
        return value - ABSOLUTE_ZERO_C
    return value


def lookup_unit(name: str) -> Unit:
    unit = _UNITS.get(name.lower()) or _UNITS.get(name.lower().rstrip("s"))
    if unit is None:
        raise ValueError(f"Unknown unit: {name}")
    return unit


def convert_units(value: float, source: str, target: str) -> tuple[float, Unit, Unit]:
    """
    Convert `value` between two units of the same dimension.

    Raises ValueError for unknown units, mismatched dimensions, and
    temperatures below absolute zero.
    """
    src, dst = lookup_unit(source), lookup_unit(target)
    if src.dimension != dst.dimension:
        raise ValueError(f"Cannot convert {src.dimension} ({src.symbol}) to {dst.dimension} ({dst.symbol})")

    if src.dimension == "temperature":
        celsius = _to_celsius(value, src.symbol)
        if celsius < ABSOLUTE_ZERO_C:
            raise ValueError(f"{value} {src.symbol} is below absolute zero")
        return _from_celsius(celsius, dst.symbol), src, dst

    return value * src.factor / dst.factor, src, dst


class UnitConverterAgent(BaseAgent):
    name = "unit_converter"
    description = "Converts between units of measurement, e.g. '10 kg to lb' or '30 °C to °F'."

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        match = _CONVERSION.search(input)
        if not match:
            return AgentResult.failure(
                "Please phrase the conversion as '<amount> <unit> to <unit>', e.g. '5 miles to km'.",
                NO_ANSWER_CONFIDENCE,
            )
        amount, source, target = match.groups()
        value = float(amount.replace(",", "."))

        try:
            converted, src, dst = convert_units(value, source, target)
        except ValueError as e:
            self.logger.info("Unit conversion rejected for '%s': %s", input, e)
            return AgentResult.failure(f"Could not perform the unit conversion: {e}.")

        return AgentResult(
            output=f"{format_number(value)} {src.symbol} = {format_number(converted)} {dst.symbol}",
            confidence=CONVERSION_CONFIDENCE,
            metadata={"value": converted, "unit": dst.symbol},
        )


# ---------------------------------------------------------------------------
# Currency Converter (SearxNG)
# ---------------------------------------------------------------------------

CURRENCY_ENGINE = "currency"


class CurrencyConverterAgent(BaseAgent):
    name = "currency_converter"
    description = "Converts between currencies using live rates, e.g. '100 USD to EUR'."

    def __init__(self, http_client: httpx.AsyncClient, base_url: str) -> None:
        super().__init__()
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    async def handle(
        self,
        input: str,
        context: AgentContext,
        call_agent: CallAgentFn | None = None,
    ) -> AgentResult:
        query = input.strip()
        if not query:
            return AgentResult.failure("Please provide an amount and two currencies, e.g. '100 USD to EUR'.")

        try:
            response = await self.http_client.get(
                f"{self.base_url}/search",
                params={"q": query, "format": "json"},
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            self.logger.error("Currency conversion failed for '%s': %s", query, e)
            return AgentResult.failure(
                "Failed to get currency conversion result.", TOOL_FAILURE_CONFIDENCE,
            )

        for answer in data.get("answers") or []:
            if isinstance(answer, dict) and answer.get("engine") == CURRENCY_ENGINE:
                return AgentResult(
                    output=f"{query}: {answer.get('answer')}",
                    confidence=CURRENCY_CONFIDENCE,
                )

        self.logger.warning("No currency answer for '%s'", query)
        return AgentResult.failure("Could not perform the currency conversion.", NO_ANSWER_CONFIDENCE)
