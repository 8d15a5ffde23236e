"""
Value adapter tests (parsing grammar, canonical rendering, storage cells).

Scope
- Validate the boolean, integer, float, string and duration grammars.
- Validate canonical rendering and set(str(value)) round trips.
- Validate Box/Ref cells and default type checks.

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import math
import unittest
from datetime import timedelta
from unittest import TestCase

from commandeer import (
    Ref,
    BoolValue,
    IntValue,
    Int64Value,
    UintValue,
    Uint64Value,
    Float64Value,
    StringValue,
    DurationValue,
    parse_duration,
    format_duration,
)


class TestBoolValue(TestCase):

    def testAcceptedSpellings(self):
        value = BoolValue()
        for text in ("1", "t", "T", "TRUE", "true", "True"):
            value.set(text)
            self.assertIs(value.get(), True, text)
        for text in ("0", "f", "F", "FALSE", "false", "False"):
            value.set(text)
            self.assertIs(value.get(), False, text)

    def testRejectsOtherSpellings(self):
        for text in ("yes", "tRUE", "", " true"):
            with self.assertRaisesRegex(ValueError, "parse error"):
                BoolValue().set(text)

    def testRendering(self):
        self.assertEqual(str(BoolValue()), "false")
        self.assertEqual(str(BoolValue(True)), "true")

    def testIsBoolFlag(self):
        self.assertTrue(BoolValue().is_bool_flag())
        self.assertFalse(IntValue().is_bool_flag())
        self.assertFalse(StringValue().is_bool_flag())


class TestIntegerValues(TestCase):

    def testBasePrefixes(self):
        value = IntValue()
        cases = {
            "42": 42,
            "-42": -42,
            "+7": 7,
            "0x1f": 31,
            "0X1F": 31,
            "0o17": 15,
            "017": 15,
            "0b101": 5,
            "1_000": 1000,
            "0x_ff": 255,
            "0": 0,
        }
        for text, expected in cases.items():
            value.set(text)
            self.assertEqual(value.get(), expected, text)

    def testMalformedIntegers(self):
        for text in ("", "abc", "08", "1__0", "_1", "1_", "0x", "1.5", " 1", "--1"):
            with self.assertRaisesRegex(ValueError, "parse error"):
                IntValue().set(text)

    def testSignedRange(self):
        value = Int64Value()
        value.set("9223372036854775807")
        self.assertEqual(value.get(), 2 ** 63 - 1)
        value.set("-9223372036854775808")
        self.assertEqual(value.get(), -2 ** 63)
        with self.assertRaisesRegex(ValueError, "value out of range"):
            value.set("9223372036854775808")

    def testUnsignedRejectsSigns(self):
        for text in ("-1", "+1"):
            with self.assertRaisesRegex(ValueError, "parse error"):
                UintValue().set(text)

    def testUnsignedRange(self):
        value = Uint64Value()
        value.set("18446744073709551615")
        self.assertEqual(value.get(), 2 ** 64 - 1)
        with self.assertRaisesRegex(ValueError, "value out of range"):
            value.set("18446744073709551616")

    def testUnsignedNegativeDefaultRejected(self):
        with self.assertRaises(ValueError):
            UintValue(-1)

    def testDefaultTypeChecked(self):
        with self.assertRaises(TypeError):
            IntValue("1")
        with self.assertRaises(TypeError):
            StringValue(1)


class TestFloat64Value(TestCase):

    def testParsing(self):
        value = Float64Value()
        value.set("1.5")
        self.assertEqual(value.get(), 1.5)
        value.set("-2e3")
        self.assertEqual(value.get(), -2000.0)
        value.set("0x1p-2")
        self.assertEqual(value.get(), 0.25)
        value.set("Inf")
        self.assertEqual(value.get(), math.inf)
        value.set("-infinity")
        self.assertEqual(value.get(), -math.inf)
        value.set("NaN")
        self.assertTrue(math.isnan(value.get()))

    def testMalformedFloats(self):
        for text in ("", "abc", "1.5.5", " 1", "+-1", ".", "1e", "0x1", "0x1.8"):
            with self.assertRaisesRegex(ValueError, "parse error"):
                Float64Value().set(text)

    def testRejectsUnderscoresAndNonAsciiDigits(self):
        for text in ("1_000", "1_0.5", "\u0661\u0662\u0663", "\uff11.5"):
            with self.assertRaisesRegex(ValueError, "parse error"):
                Float64Value().set(text)

    def testHexUnderscoresAfterPrefix(self):
        value = Float64Value()
        value.set("0x_1.8p1")
        self.assertEqual(value.get(), 3.0)

    def testOverflowIsOutOfRange(self):
        with self.assertRaisesRegex(ValueError, "value out of range"):
            Float64Value().set("1e400")

    def testShortestRendering(self):
        cases = {
            0.0: "0",
            1.5: "1.5",
            100.0: "100",
            123456.0: "123456",
            1234567.0: "1.234567e+06",
            1e6: "1e+06",
            1e21: "1e+21",
            0.0001: "0.0001",
            0.00001: "1e-05",
            -2.5: "-2.5",
            0.1: "0.1",
            math.inf: "+Inf",
            -math.inf: "-Inf",
            math.nan: "NaN",
        }
        for number, expected in cases.items():
            self.assertEqual(str(Float64Value(number)), expected, repr(number))

    def testIntegerDefaultAccepted(self):
        self.assertEqual(str(Float64Value(3)), "3")


class TestDuration(TestCase):

    def testParseUnits(self):
        self.assertEqual(parse_duration("1h30m"), timedelta(hours=1, minutes=30))
        self.assertEqual(parse_duration("300ms"), timedelta(milliseconds=300))
        self.assertEqual(parse_duration("1.5s"), timedelta(seconds=1.5))
        self.assertEqual(parse_duration(".5s"), timedelta(milliseconds=500))
        self.assertEqual(parse_duration("100us"), timedelta(microseconds=100))
        self.assertEqual(parse_duration("100µs"), timedelta(microseconds=100))
        self.assertEqual(parse_duration("100μs"), timedelta(microseconds=100))
        self.assertEqual(parse_duration("2000ns"), timedelta(microseconds=2))
        self.assertEqual(parse_duration("-1.5h"), -timedelta(hours=1, minutes=30))
        self.assertEqual(parse_duration("+5m"), timedelta(minutes=5))
        self.assertEqual(parse_duration("0"), timedelta())

    def testSubMicrosecondRounds(self):
        self.assertEqual(parse_duration("1ns"), timedelta())
        self.assertEqual(parse_duration("1600ns"), timedelta(microseconds=2))

    def testGrammarErrors(self):
        with self.assertRaisesRegex(ValueError, r'^time: invalid duration ""$'):
            parse_duration("")
        with self.assertRaisesRegex(ValueError, r'^time: invalid duration "-"$'):
            parse_duration("-")
        with self.assertRaisesRegex(ValueError, r'^time: invalid duration "h"$'):
            parse_duration("h")
        with self.assertRaisesRegex(ValueError, r'^time: missing unit in duration "1"$'):
            parse_duration("1")
        with self.assertRaisesRegex(ValueError, r'^time: unknown unit "x" in duration "1x"$'):
            parse_duration("1x")
        with self.assertRaisesRegex(ValueError, r'^time: unknown unit "h-" in duration "1h-2m"$'):
            parse_duration("1h-2m")

    def testCanonicalRendering(self):
        cases = {
            timedelta(): "0s",
            timedelta(microseconds=250): "250µs",
            timedelta(microseconds=1500): "1.5ms",
            timedelta(milliseconds=300): "300ms",
            timedelta(seconds=45): "45s",
            timedelta(seconds=1.5): "1.5s",
            timedelta(minutes=1): "1m0s",
            timedelta(minutes=2, seconds=3.5): "2m3.5s",
            timedelta(hours=1, minutes=30): "1h30m0s",
            timedelta(hours=25): "25h0m0s",
            -timedelta(seconds=90): "-1m30s",
        }
        for delta, expected in cases.items():
            self.assertEqual(format_duration(delta), expected)

    def testRoundTrip(self):
        value = DurationValue()
        value.set("1h30m0s")
        self.assertEqual(str(value), "1h30m0s")
        value.set("90m")
        self.assertEqual(str(value), "1h30m0s")
        bound = value.get()
        value.set(str(value))
        self.assertEqual(value.get(), bound)

    def testZeroDefault(self):
        self.assertEqual(str(DurationValue()), "0s")


class TestRoundTrip(TestCase):

    def testSetOfRenderingReproducesValue(self):
        samples = (
            (BoolValue(), "T"),
            (IntValue(), "0x10"),
            (UintValue(), "0b11"),
            (Float64Value(), "2.50"),
            (Float64Value(), "1e6"),
            (Float64Value(), "-inf"),
            (StringValue(), "some text"),
            (DurationValue(), "1.25h"),
        )
        for value, text in samples:
            value.set(text)
            bound = value.get()
            value.set(str(value))
            self.assertEqual(value.get(), bound, text)


class TestCells(TestCase):

    def testRefBindsToAttribute(self):
        class Holder:
            count = 7

        holder = Holder()
        value = IntValue(cell=Ref(holder, "count"))
        self.assertEqual(value.get(), 7)
        value.set("9")
        self.assertEqual(holder.count, 9)

    def testRefDefaultOverwritesAttribute(self):
        class Holder:
            name = "old"

        holder = Holder()
        StringValue("new", cell=Ref(holder, "name"))
        self.assertEqual(holder.name, "new")

    def testUninitializedCellRendersZero(self):
        class Holder:
            pass

        holder = Holder()
        value = IntValue(cell=Ref(holder, "missing"))
        self.assertEqual(str(value), "0")
        self.assertEqual(holder.missing, 0)

    def testSetRequiresText(self):
        with self.assertRaises(TypeError):
            IntValue().set(3)


if __name__ == "__main__":
    unittest.main()
