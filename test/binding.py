"""
Dataclass binder tests (tag grammar, field types, registration faults).

Scope
- Validate the tag grammar ("name", "name;usage=...", "?N").
- Validate that every supported field type binds and parses onto the instance.
- Validate the configuration faults for bad inputs.

Conventions
- Test method names follow CamelCase per project convention.
- Option classes live at module level so their annotations resolve.
"""

from __future__ import annotations

import io
import unittest
from dataclasses import dataclass
from datetime import timedelta
from unittest import TestCase

from commandeer import (
    ErrorHandling,
    FlagSet,
    Int64,
    Uint,
    Uint64,
    flag,
    parse_tag,
    struct_vars,
)


@dataclass
class Options:
    verbose: bool = flag("v;usage=verbose output", default=False)
    count: int = flag("count;usage=number of items", default=3)
    offset: Int64 = flag("offset", default=0)
    mask: Uint = flag("mask", default=0)
    size: Uint64 = flag("size", default=0)
    ratio: float = flag("ratio", default=0.5)
    name: str = flag("name;usage=who; or what", default="anon")
    timeout: timedelta = flag("timeout;usage=how long to wait", default=timedelta(seconds=5))
    target: str = flag("?0;usage=target name", default="")
    untagged: int = 7


@dataclass
class Inner:
    depth: int = flag("depth", default=0)


@dataclass
class Nested:
    inner: Inner = flag("inner", factory=Inner)


@dataclass
class Unsupported:
    items: list = flag("items", factory=list)


@dataclass
class WrongDefault:
    count: int = flag("count", default="3")


def make_flags(policy=ErrorHandling.CONTINUE_ON_ERROR):
    flags = FlagSet("demo", policy, program=None)
    flags.output = io.StringIO()
    return flags


class TestTagGrammar(TestCase):

    def testNamedTag(self):
        self.assertEqual(parse_tag("level"), ("level", None, ""))
        self.assertEqual(parse_tag("level;usage=how loud"), ("level", None, "how loud"))

    def testUsageMayContainSeparator(self):
        self.assertEqual(parse_tag("a;usage=x;y=z"), ("a", None, "x;y=z"))

    def testPositionalTag(self):
        self.assertEqual(parse_tag("?2"), (None, 2, ""))
        self.assertEqual(parse_tag("?0;usage=first"), (None, 0, "first"))

    def testMalformedTags(self):
        for tag in ("", ";usage=x", "?", "?x", "?-1", "name;help=x", "name;usage"):
            with self.assertRaises(ValueError, msg=tag):
                parse_tag(tag)

    def testNonStringTag(self):
        with self.assertRaises(TypeError):
            parse_tag(3)

    def testFlagValidatesEagerly(self):
        with self.assertRaises(ValueError):
            flag("?nope")

    def testFlagKeepsMetadata(self):
        declared = flag("level", default=1, metadata={"owner": "tests"})
        self.assertEqual(declared.metadata["flag"], "level")
        self.assertEqual(declared.metadata["owner"], "tests")


class TestStructVars(TestCase):

    def testAllFieldTypesBind(self):
        options = Options()
        flags = make_flags()
        struct_vars(flags, options)
        flags.parse([
            "-v",
            "-count", "5",
            "-offset", "-9",
            "-mask", "0x10",
            "-size", "18446744073709551615",
            "-ratio", "2.5",
            "-name", "bob",
            "-timeout", "1m30s",
            "tgt",
        ])
        self.assertIs(options.verbose, True)
        self.assertEqual(options.count, 5)
        self.assertEqual(options.offset, -9)
        self.assertEqual(options.mask, 16)
        self.assertEqual(options.size, 2 ** 64 - 1)
        self.assertEqual(options.ratio, 2.5)
        self.assertEqual(options.name, "bob")
        self.assertEqual(options.timeout, timedelta(minutes=1, seconds=30))
        self.assertEqual(options.target, "tgt")
        self.assertEqual(options.untagged, 7)

    def testUntaggedFieldsIgnored(self):
        flags = make_flags()
        flags.struct_vars(Options())
        self.assertIsNone(flags.lookup("untagged"))
        self.assertIsNotNone(flags.lookup("count"))
        self.assertIsNotNone(flags.lookup_positional(0))

    def testCurrentValuesAreDefaults(self):
        flags = make_flags()
        struct_vars(flags, Options(count=9, name="zed"))
        self.assertEqual(flags.lookup("count").default, "9")
        self.assertEqual(flags.lookup("name").default, "zed")
        self.assertEqual(flags.lookup("timeout").default, "5s")

    def testUsageFromTags(self):
        flags = make_flags()
        struct_vars(flags, Options())
        self.assertEqual(flags.lookup("name").usage, "who; or what")
        flags.print_defaults()
        output = flags.output.getvalue()
        self.assertIn("number of items (default 3)", output)
        self.assertIn("how long to wait (default 5s)", output)
        self.assertIn("?0 string", output)

    def testUnsetFlagsKeepFieldValues(self):
        options = Options(count=4)
        flags = make_flags()
        struct_vars(flags, options)
        flags.parse(["-v"])
        self.assertEqual(options.count, 4)
        self.assertEqual(options.name, "anon")

    def testTolerantParseOfStruct(self):
        options = Options()
        flags = make_flags(ErrorHandling.CONTINUE_ON_ERROR | ErrorHandling.CONTINUE_ON_UNDEFINED)
        struct_vars(flags, options)
        flags.parse(["build", "-x", "-count", "2"])
        self.assertEqual(options.count, 2)
        self.assertEqual(options.target, "build")
        self.assertEqual(flags.next_args(), ["-x"])


class TestStructVarsFaults(TestCase):

    def testRequiresDataclassInstance(self):
        with self.assertRaises(TypeError):
            struct_vars(make_flags(), object())
        with self.assertRaises(TypeError):
            struct_vars(make_flags(), Options)

    def testNestedDataclassRejected(self):
        with self.assertRaisesRegex(TypeError, "nested dataclass"):
            struct_vars(make_flags(), Nested())

    def testUnsupportedTypeRejected(self):
        with self.assertRaisesRegex(TypeError, "unsupported flag type"):
            struct_vars(make_flags(), Unsupported())

    def testWrongDefaultTypeRejected(self):
        with self.assertRaises(TypeError):
            struct_vars(make_flags(), WrongDefault())

    def testDoubleRegistrationRejected(self):
        flags = make_flags()
        struct_vars(flags, Options())
        with self.assertRaises(ValueError):
            struct_vars(flags, Options())


if __name__ == "__main__":
    unittest.main()
