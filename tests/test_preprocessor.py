import asyncio
import io
import os
import sys
import tempfile
import unittest
from unittest import mock

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from pptext import (
    ConfigurationLockedError,
    CyclicReferenceError,
    DictProfileResolver,
    DirectiveSyntaxError,
    InvalidArgumentError,
    LineEnding,
    NotSupportedError,
    OptionsBuilder,
    PreprocessOptions,
    PreprocessReader,
    ProfileResolutionError,
    UndefinedReferenceError,
    VariableStyle,
    preprocess,
)
from pptext.line_source import strip_terminator


class PreprocessTestCase(unittest.TestCase):
    """Runs every input through each of the read paths and compares."""

    def create_reader(self, text, variables=None, **options):
        options.setdefault("line_ending", LineEnding.LF)
        return PreprocessReader(text, variables, **options)

    def verify(self, text, expected, variables=None, **options):
        reader = self.create_reader(text, variables, **options)
        self.assertEqual(reader.read_to_end(), expected)

        reader = self.create_reader(text, variables, **options)
        out = []
        line = reader.read_line()
        while line is not None:
            out.append(line + "\n")
            line = reader.read_line()
        self.assertEqual("".join(out), expected)

        reader = self.create_reader(text, variables, **options)
        self.assertEqual("".join(line + "\n" for line in reader.lines()), expected)

        reader = self.create_reader(text, variables, **options)
        self.assertEqual(asyncio.run(reader.read_to_end_async()), expected)

        async def collect():
            reader = self.create_reader(text, variables, **options)
            return "".join([line + "\n" async for line in reader])

        self.assertEqual(asyncio.run(collect()), expected)

        # Same lines from an async generator, terminators already removed
        async def from_async_lines():
            async def gen():
                for raw in io.StringIO(text, newline=""):
                    yield strip_terminator(raw)

            reader = self.create_reader(gen(), variables, **options)
            return await reader.read_to_end_async()

        self.assertEqual(asyncio.run(from_async_lines()), expected)


class TestDefaults(PreprocessTestCase):

    def test_default_options(self):
        reader = PreprocessReader("")
        opts = reader.options
        self.assertIs(opts.variable_style, VariableStyle.ANGLE)
        self.assertTrue(opts.process_statements)
        self.assertTrue(opts.strip_comments)
        self.assertFalse(opts.remove_comments)
        self.assertFalse(opts.remove_blank)
        self.assertEqual(opts.statement_marker, "#")
        self.assertEqual(opts.tab_stop, 0)
        self.assertEqual(opts.indent, 0)
        self.assertIs(opts.line_ending, LineEnding.PLATFORM)
        self.assertTrue(opts.expand_variables)
        self.assertIsNone(opts.default_variable)
        self.assertIsNone(opts.default_environment_variable)
        self.assertEqual(opts.comment_markers, ("//",))

    def test_empty(self):
        self.verify("", "")

    def test_no_change(self):
        text = "This is a test\nof\nthe\nemergency broadcasting system.\n"
        self.verify(text, text)

    def test_missing_final_terminator_is_added(self):
        self.verify("one\ntwo", "one\ntwo\n")

    def test_source_line_endings_are_normalized(self):
        self.verify("one\r\ntwo\rthree\n", "one\ntwo\nthree\n")


class TestComments(PreprocessTestCase):

    INPUT = (
        "// This is a comment\n"
        "     // This is a comment\n"
        "This is a test\n"
        "// This is a comment\n"
        "of the emergency // not a comment\n"
        "broadcasting system\n"
        "//\n"
        "a\n"
    )

    def test_strip(self):
        self.verify(
            self.INPUT,
            "\n"
            "\n"
            "This is a test\n"
            "\n"
            "of the emergency // not a comment\n"
            "broadcasting system\n"
            "\n"
            "a\n",
        )

    def test_remove(self):
        self.verify(
            self.INPUT,
            "This is a test\n"
            "of the emergency // not a comment\n"
            "broadcasting system\n"
            "a\n",
            remove_comments=True,
        )

    def test_disable_strip(self):
        self.verify("\n// Hello World!\n", "\n// Hello World!\n", strip_comments=False)

    def test_remove_blank(self):
        self.verify("\n//\n// Test\n", "", remove_blank=True)
        self.verify("a\n   \n\t\nb\n", "a\nb\n", remove_blank=True)

    def test_custom_marker(self):
        reader = self.create_reader("#define x=1\n# note\n; other\n$<x>\n")
        reader.add_comment_marker(";")
        reader.add_comment_marker("#")
        self.assertEqual(reader.read_to_end(), "\n\n1\n")

    def test_clear_markers(self):
        reader = self.create_reader("// kept\n")
        reader.clear_comment_markers()
        self.assertEqual(reader.read_to_end(), "// kept\n")

    def test_invalid_markers(self):
        reader = self.create_reader("")
        for marker in ("", "/ /", "ab", "--x"):
            with self.assertRaises(InvalidArgumentError):
                reader.add_comment_marker(marker)

    def test_comment_detected_after_expansion(self):
        self.verify("$<c>\nx\n", "\nx\n", {"c": "// hidden"})


class TestVariables(PreprocessTestCase):

    VARIABLES = {"hello": "Hello World!", "bye": "Goodbye!"}

    def test_angle(self):
        self.verify(
            "\n$<hello>\n---$<hello>---\n$<hello> $<bye>\n$<ref> $<bye>\n",
            "\nHello World!\n---Hello World!---\nHello World! Goodbye!\nHello World! Goodbye!\n",
            dict(self.VARIABLES, ref="$<hello>"),
        )

    def test_curly(self):
        self.verify(
            "${hello}\n>>>${hello}<<<\n${ref} ${bye}\n$<hello>\n",
            "Hello World!\n>>>Hello World!<<<\nHello World! Goodbye!\n$<hello>\n",
            dict(self.VARIABLES, ref="${hello}"),
            variable_style=VariableStyle.CURLY,
        )

    def test_paren(self):
        self.verify(
            "$(hello)\n>>>$(hello)<<<\n$(ref) $(bye)\n",
            "Hello World!\n>>>Hello World!<<<\nHello World! Goodbye!\n",
            dict(self.VARIABLES, ref="$(hello)"),
            variable_style=VariableStyle.PAREN,
        )

    def test_environment(self):
        with mock.patch.dict(os.environ, {"NF_TEST_VARIABLE": "Hello World!"}):
            self.verify("\n---$<<NF_TEST_VARIABLE>>---\n", "\n---Hello World!---\n")
            self.verify(">>>${{NF_TEST_VARIABLE}}<<<\n", ">>>Hello World!<<<\n",
                        variable_style=VariableStyle.CURLY)
            self.verify(">>>$((NF_TEST_VARIABLE))<<<\n", ">>>Hello World!<<<\n",
                        variable_style=VariableStyle.PAREN)

    def test_environment_value_is_literal(self):
        with mock.patch.dict(os.environ, {"NF_TEST_LITERAL": "$<hello>"}):
            self.verify("$<<NF_TEST_LITERAL>>\n", "$<hello>\n")

    def test_recursive(self):
        for style in VariableStyle:
            variables = {
                "recursive": style.reference("test"),
                "test": style.reference("recursive"),
            }
            with self.assertRaises(CyclicReferenceError):
                self.verify(style.reference("recursive"), "", variables, variable_style=style)

    def test_self_reference(self):
        with self.assertRaises(CyclicReferenceError):
            self.verify("$<a>", "", {"a": "x$<a>"})

    def test_same_variable_twice_is_not_a_cycle(self):
        self.verify("$<pair>\n", "1-1\n", {"pair": "$<one>-$<one>", "one": "1"})

    def test_undefined(self):
        with self.assertRaises(UndefinedReferenceError):
            self.verify(">>>$<hello><<<", "")
        with self.assertRaises(UndefinedReferenceError):
            self.verify(">>>$<ref><<<", "", {"ref": "$<undefined>"})

    def test_default_variable(self):
        self.verify("\n---$<hello>---\n", "\n------\n", default_variable="")
        self.verify(">>>$<hello><<<\n", ">>>DEFAULT<<<\n", default_variable="DEFAULT")

    def test_undefined_environment(self):
        text = "---$<<NF_TEST_VARIABLE>>---\n---$<<NF_UNDEFINED_VARIABLE>>---\n"
        with mock.patch.dict(os.environ, {"NF_TEST_VARIABLE": "Hello World!"}):
            os.environ.pop("NF_UNDEFINED_VARIABLE", None)
            with self.assertRaises(UndefinedReferenceError):
                self.verify(text, "")
            self.verify(text, "---Hello World!---\n---DEFAULT-VALUE---\n",
                        default_environment_variable="DEFAULT-VALUE")

    def test_set_overrides(self):
        reader = self.create_reader("#define x=2\n$<x>\n")
        reader.set("x", "1")
        self.assertEqual(reader.read_line(), "2")

        reader = self.create_reader("$<x>\n")
        reader.set("x", "1")
        self.assertEqual(reader.read_to_end(), "1\n")

    def test_set_during_reading(self):
        reader = self.create_reader("$<x>\n$<x>\n")
        reader.set("x", "1")
        self.assertEqual(reader.read_line(), "1")
        reader.set("x", "2")
        self.assertEqual(reader.read_line(), "2")

    def test_set_bool_and_objects(self):
        self.verify("$<a> $<b> $<c> [$<d>]\n", "true false 42 []\n",
                    {"a": True, "b": False, "c": 42, "d": None})

    def test_invalid_name(self):
        reader = self.create_reader("")
        with self.assertRaises(InvalidArgumentError):
            reader.set("bad name", "1")
        with self.assertRaises(InvalidArgumentError):
            reader.set("", "1")

    def test_expand_variables_disabled(self):
        self.verify("#define x=1\n$<x>\n#if $<x>==1\nyes\n#endif\n", "$<x>\nyes\n",
                    expand_variables=False)

    def test_secret_reference(self):
        resolver = DictProfileResolver({
            "secret:db:vault1": "s3cr3t",
            ("password", "admin"): "hunter2",
        })
        reader = self.create_reader(
            "$<<<secret:db:vault1>>> $<<<password:admin>>> $<<<password:admin:any>>>\n",
            profile_resolver=resolver,
        )
        self.assertEqual(reader.read_to_end(), "s3cr3t hunter2 hunter2\n")

    def test_secret_not_found(self):
        reader = self.create_reader("$<<<profile:missing>>>\n")
        with self.assertRaises(ProfileResolutionError):
            reader.read_to_end()

        reader = self.create_reader("$<<<unknown:name>>>\n",
                                    profile_resolver=DictProfileResolver({}))
        with self.assertRaises(ProfileResolutionError):
            reader.read_to_end()

    def test_secret_resolver_errors_propagate(self):
        class BrokenResolver:
            def resolve(self, kind, name, vault=None):
                raise RuntimeError("vault offline")

        reader = self.create_reader("$<<<secret:db>>>\n", profile_resolver=BrokenResolver())
        with self.assertRaises(RuntimeError):
            reader.read_to_end()


class TestDefine(PreprocessTestCase):

    def test_define(self):
        self.verify(
            "\n"
            "#define test = 1\n"
            "$<test>\n"
            "    #define test=2\n"
            "    $<test>\n"
            "#define test =3\n"
            "$<test>\n"
            "#define test= 4\n"
            "$<test>\n"
            "#define test\n"
            ">>>$<test><<<\n"
            "#define foo=$<bar>\n"
            "#define bar=FOOBAR\n"
            "$<foo>\n",
            "\n1\n    2\n3\n4\n>>><<<\nFOOBAR\n",
        )

    def test_invalid(self):
        for text in ("#define", "#define =", "#define %%2 = 10", "#define test junk"):
            with self.subTest(text=text):
                with self.assertRaises(DirectiveSyntaxError):
                    self.verify(text, "")

    def test_define_in_false_branch_is_ignored(self):
        self.verify(
            "#if a==b\n#define x=1\n#endif\n#if defined(x)\nyes\n#else\nno\n#endif\n",
            "no\n",
        )


class TestIf(PreprocessTestCase):

    def check(self, body, expected, **kwargs):
        self.verify(body, expected, **kwargs)

    def test_compare(self):
        self.check("\n#if test==test\none\n#endif\n", "\none\n")
        self.check("\n#if test!=test\none\n#endif\n", "\n")
        self.check("#if test == test \none\n#else\ntwo\n#endif\n", "one\n")
        self.check("#if test == xxx \none\n#else\ntwo\n#endif\n", "two\n")
        self.check("#if test != test \none\n#else\ntwo\n#endif\n", "two\n")
        self.check("#if test != xxx \none\n#else\ntwo\n#endif\n", "one\n")

    def test_compare_is_case_sensitive(self):
        self.check("#if Test==test\none\n#else\ntwo\n#endif\n", "two\n")

    def test_defined(self):
        self.check("#if defined(test) \none\n#else\ntwo\n#endif\n", "two\n")
        self.check("#if undefined(test) \none\n#else\ntwo\n#endif\n", "one\n")
        self.check("#define test\n#if defined(test) \none\n#else\ntwo\n#endif\n", "one\n")
        self.check("#define test\n#if undefined(test) \none\n#else\ntwo\n#endif\n", "two\n")
        self.check("#define test=1\n#if defined(test)\none\n#else\ntwo\n#endif\n", "one\n")

    def test_defined_does_not_expand(self):
        self.check("#define test=$<missing>\n#if defined(test)\none\n#endif\n", "one\n")

    def test_variables(self):
        self.check("#define a=1\n#define b=2\n#if $<a>==$<b>\none\n#else\ntwo\n#endif\n", "two\n")
        self.check("#define a=1\n#define b=2\n#if $<a>!=$<b> \none\n#else\ntwo\n#endif\n", "one\n")

    def test_nested(self):
        body = (
            "\n"
            "#define test=1\n"
            "#if {outer}\n"
            "    #if $<test>==1\n"
            "    inner-then\n"
            "    #endif\n"
            "#else\n"
            "    #if $<test>==1\n"
            "    inner-else\n"
            "    #endif\n"
            "#endif\n"
        )
        self.check(body.format(outer="$<test>==1 "), "\n    inner-then\n")
        self.check(body.format(outer="undefined(test) "), "\n    inner-else\n")

    def test_nested_cannot_reenable(self):
        self.check("#if a==b\n#if a==a\nX\n#else\nY\n#endif\n#endif\nZ\n", "Z\n")

    def test_inactive_branch_skips_expansion(self):
        self.check("#if defined(x)\n#if $<x>==1\nX\n#endif\n#endif\ndone\n", "done\n")

    def test_invalid(self):
        for text in (
            "#if\n#endif",
            "#if =\n#endif",
            "#if <>\n#endif",
            "#if ==x\n#endif",
            "#if defined\n#endif",
            "#if defined()\n#endif",
            "#if undefined(a b)\n#endif",
            "#if",
            "#if a==a",
            "#else",
            "#endif",
            "#if a==a\n#else\n#else\n#endif",
            "#if a==a\n#endif junk",
        ):
            with self.subTest(text=text):
                with self.assertRaises(DirectiveSyntaxError):
                    self.verify(text, "")

    def test_unclosed_reports_opening_line(self):
        reader = self.create_reader("a\n#if a==a\nb\n")
        with self.assertRaises(DirectiveSyntaxError) as ctx:
            reader.read_to_end()
        self.assertIn("line 2", str(ctx.exception))


class TestSwitch(PreprocessTestCase):

    BODY = (
        "\n"
        "{head}"
        "A\n"
        "#case zero\n"
        "B\n"
        "#case one\n"
        "C\n"
        "#case two\n"
        "D\n"
        "#default\n"
        "E\n"
        "#endswitch\n"
    )

    def test_switch(self):
        self.verify(self.BODY.format(head="#switch one\n"), "\nC\n")
        self.verify(self.BODY.format(head="#define test=one\n#switch $<test>\n"), "\nC\n")
        self.verify(self.BODY.format(head="#define test=two\n#switch $<test>\n"), "\nD\n")
        self.verify(self.BODY.format(head="#define test=100\n#switch $<test>\n"), "\nE\n")

    def test_case_values_are_expanded(self):
        self.verify("#define v=x\n#switch x\n#case $<v>\nyes\n#default\nno\n#endswitch\n", "yes\n")

    def test_nested_in_false_branch(self):
        self.verify("#if a==b\n#switch x\n#case x\nHIDDEN\n#default\nALSO\n#endswitch\n#endif\nshown\n",
                    "shown\n")

    def test_nested_if_in_case(self):
        self.verify(
            "#switch b\n#case a\n#if 1==1\nA\n#endif\n#case b\n#if 1==1\nB\n#else\nX\n#endif\n#endswitch\n",
            "B\n",
        )

    def test_invalid(self):
        for text in (
            "#switch 10\n#case 10\n#case 10\n#endswitch",
            "#switch 10\n#case 1\n#case 1\n#endswitch",
            "#switch 10\n#default\n#case 10\n#endswitch",
            "#switch 10\n#default\n#default\n#endswitch",
            "#switch 10\n#case\n#endswitch",
            "#switch",
            "#switch 10",
            "#case",
            "#default",
            "#endswitch",
            "#if a==a\n#case a\n#endif",
            "#switch a\n#endif",
        ):
            with self.subTest(text=text):
                with self.assertRaises(DirectiveSyntaxError):
                    self.verify(text, "")


class TestStatements(PreprocessTestCase):

    def test_disable(self):
        text = "\n#define DEBUG = true\n#if defined(DEBUG)\n#endif\n"
        self.verify(text, text, process_statements=False)

    def test_disabled_statements_still_expand(self):
        self.verify("#if $<x>==1\n", "#if 1==1\n", {"x": "1"}, process_statements=False)

    def test_marker(self):
        self.verify(
            "\n@define test = true\n@if defined(test)\nHello World!\n@else\nGoodbye World!\n@endif\n",
            "\nHello World!\n",
            statement_marker="@",
        )

    def test_unknown_keywords_are_text(self):
        self.verify("# line1\n#include <x>\n#ifdef X\n", "# line1\n#include <x>\n#ifdef X\n")

    def test_keyword_needs_separator(self):
        text = "#define-x=1\n#switch a\n#case-1\n#default\n#endswitch\n"
        self.verify(text, "#define-x=1\n")

        reader = self.create_reader("#define-x=1\n")
        reader.read_to_end()
        self.assertNotIn("-x", reader.variables)


class TestFormatting(PreprocessTestCase):

    TABS = "\nline1\n\tline2\n-\tline3\n--\tline4\n---\tline5\n----\tline6\n\t\tline7\n"

    def test_tab_stops(self):
        self.verify(
            self.TABS,
            "\nline1\n    line2\n-   line3\n--  line4\n--- line5\n----    line6\n        line7\n",
            tab_stop=4,
        )
        self.verify(self.TABS, self.TABS, tab_stop=0)

    def test_indent(self):
        self.verify("\nTest\n", "\n    Test\n", indent=4)

    def test_indent_after_tabs(self):
        self.verify("-\tx\n", "  -   x\n", indent=2, tab_stop=4)

    def test_line_endings(self):
        text = "line1\nline2\nline3\n"
        self.assertEqual(preprocess(text, line_ending=LineEnding.CRLF), "line1\r\nline2\r\nline3\r\n")
        self.assertEqual(preprocess(text, line_ending=LineEnding.LF), "line1\nline2\nline3\n")
        self.assertEqual(preprocess(text), os.linesep.join(["line1", "line2", "line3", ""]))

        reader = PreprocessReader(text, line_ending=LineEnding.CRLF)
        self.assertEqual(asyncio.run(reader.read_to_end_async()), "line1\r\nline2\r\nline3\r\n")


class TestReader(PreprocessTestCase):

    def test_not_supported(self):
        reader = PreprocessReader("")
        with self.assertRaises(NotSupportedError):
            reader.read()
        with self.assertRaises(NotSupportedError):
            reader.peek()
        with self.assertRaises(NotImplementedError):
            reader.read_block([None] * 100, 0, 100)
        with self.assertRaises(NotSupportedError):
            asyncio.run(reader.read_async())
        with self.assertRaises(NotSupportedError):
            asyncio.run(reader.read_block_async([None] * 100, 0, 100))

    def test_lines_are_not_restartable(self):
        reader = self.create_reader("a\nb\n")
        self.assertEqual(list(reader.lines()), ["a", "b"])
        self.assertEqual(list(reader.lines()), [])
        self.assertIsNone(reader.read_line())

    def test_partial_output_survives_errors(self):
        reader = self.create_reader("ok\n$<missing>\nnever\n")
        self.assertEqual(reader.read_line(), "ok")
        with self.assertRaises(UndefinedReferenceError) as ctx:
            reader.read_line()
        self.assertEqual(ctx.exception.line_number, 2)

    def test_options_locked_after_first_read(self):
        reader = self.create_reader("a\n")
        reader.configure(indent=2)
        self.assertEqual(reader.read_line(), "  a")
        with self.assertRaises(ConfigurationLockedError):
            reader.configure(indent=4)
        with self.assertRaises(ConfigurationLockedError):
            reader.add_comment_marker("#")
        with self.assertRaises(ConfigurationLockedError):
            reader.clear_comment_markers()

    def test_unknown_option(self):
        with self.assertRaises(InvalidArgumentError):
            PreprocessReader("", tabstop=4)

    def test_builder(self):
        options = (OptionsBuilder()
                   .with_tab_stop(4)
                   .with_indent(2)
                   .with_line_ending(LineEnding.LF)
                   .clear_comment_markers()
                   .add_comment_marker("--")
                   .build())
        self.assertEqual(options.comment_markers, ("--",))
        reader = PreprocessReader("-- gone\n\tx\n", options=options)
        self.assertEqual(reader.read_to_end(), "\n      x\n")

    def test_invalid_options(self):
        with self.assertRaises(InvalidArgumentError):
            PreprocessOptions(tab_stop=-1)
        with self.assertRaises(InvalidArgumentError):
            PreprocessOptions(indent=-1)
        with self.assertRaises(InvalidArgumentError):
            PreprocessOptions(statement_marker="##")
        with self.assertRaises(InvalidArgumentError):
            PreprocessOptions(comment_markers=("# ",))

    def test_from_file_and_close(self):
        with tempfile.NamedTemporaryFile("w", suffix=".txt", delete=False, encoding="utf-8") as f:
            f.write("#define who=World\r\nHello $<who>!\r\n")
            path = f.name
        try:
            with PreprocessReader.from_file(path, line_ending=LineEnding.LF) as reader:
                self.assertEqual(reader.read_to_end(), "Hello World!\n")
            self.assertTrue(reader.closed)
            with self.assertRaises(ValueError):
                reader.read_line()
        finally:
            os.unlink(path)

    def test_async_source(self):
        async def produce():
            for line in ("#define x=1\n", "#if $<x>==1\n", "yes\n", "#endif\n"):
                yield line

        async def run():
            async with PreprocessReader(produce(), line_ending=LineEnding.LF) as reader:
                return await reader.read_to_end_async()

        self.assertEqual(asyncio.run(run()), "yes\n")

    def test_async_source_blank_lines(self):
        """Empty lines from an async iterable are blank lines, not end of input."""
        def run(items):
            async def produce():
                for item in items:
                    yield item

            reader = PreprocessReader(produce(), line_ending=LineEnding.LF)
            return asyncio.run(reader.read_to_end_async())

        self.assertEqual(run(["a", "", "b"]), "a\n\nb\n")
        self.assertEqual(run(["#if a==a", "x", "", "#endif"]), "x\n\n")
        self.assertEqual(run(["", ""]), "\n\n")

    def test_sync_read_of_async_source(self):
        class Reader:
            async def readline(self):
                return b""

        reader = PreprocessReader(Reader())
        with self.assertRaises(NotSupportedError):
            reader.read_line()
        self.assertIsNone(asyncio.run(reader.read_line_async()))

    def test_iterable_source(self):
        reader = PreprocessReader(["a", "#define b=2", "$<b>"], line_ending=LineEnding.LF)
        self.assertEqual(list(reader), ["a", "2"])


if __name__ == "__main__":
    unittest.main()
