"""Tests for declaration extraction across Python, Java and Kotlin."""

from __future__ import annotations

import textwrap

import pytest

from changescope.parsers import UnparseableSource, Visibility, language_for, parse_declarations


PYTHON_SOURCE = textwrap.dedent('''
    import os

    class Player(Base):
        def __init__(self, source):
            self.source = source

        @property
        def position(self) -> int:
            return 0

        def play(self, speed: float = 1.0) -> None:
            pass

        def _reset(self):
            pass


    def helper(x):
        return x


    class _Internal:
        def run(self):
            pass
''')

JAVA_SOURCE = textwrap.dedent('''
    package tv.player;

    public class Player {
        public static final int MAX = 3;
        private int count;

        public Player(int count) {
            this.count = count;
        }

        public void play(int speed) {}

        void internal() {}

        protected String name() {
            return "";
        }

        public interface Listener {
            void onEvent(String event);
        }

        public enum State { IDLE, PLAYING }
    }
''')

KOTLIN_SOURCE = textwrap.dedent('''
    package tv.player

    /* class Ghost { } */
    class Player(private val id: String) : Base() {
        fun play(speed: Int): Boolean {
            val local = 1
            return true
        }
        private fun reset() {}
        internal val state: String = "idle { not a brace"
        companion object {
            const val MAX = 3
            fun create(): Player = Player("x")
        }
    }

    private fun helper() = 1

    object Registry {
        fun register(player: Player) {}
    }
''')


@pytest.mark.parametrize(
    "path, expected",
    [("a/b.py", "python"), ("A.java", "java"), ("x/Y.kt", "kotlin"), ("build.gradle.kts", "kotlin"),
     ("layout.xml", None)],
)
def test_language_for(path, expected) -> None:
    assert language_for(path) == expected


def test_python_declarations_and_visibility() -> None:
    found = parse_declarations(PYTHON_SOURCE, "python")

    assert set(found) == {
        "Player", "Player.__init__", "Player.position", "Player.play", "Player._reset",
        "helper", "_Internal", "_Internal.run",
    }
    assert found["Player.__init__"].visibility is Visibility.PUBLIC
    assert found["Player._reset"].visibility is Visibility.PRIVATE
    assert found["_Internal.run"].visibility is Visibility.PRIVATE
    assert found["helper"].kind == "function"
    assert found["helper"].signature == "(x)"
    assert found["Player.play"].kind == "method"
    assert "None" in found["Player.play"].signature


def test_python_signature_ignores_whitespace() -> None:
    tight = parse_declarations("def f(a,b:int=1)->str:\n    return ''\n", "python")
    loose = parse_declarations("def f( a, b: int = 1 ) -> str:\n    return ''\n", "python")

    assert tight["f"].signature == loose["f"].signature


def test_java_declarations_and_visibility() -> None:
    found = parse_declarations(JAVA_SOURCE, "java")

    assert found["Player"].kind == "class"
    assert found["Player.MAX"].visibility is Visibility.PUBLIC
    assert found["Player.count"].visibility is Visibility.PRIVATE
    assert found["Player.<init>"].kind == "constructor"
    assert found["Player.play"].visibility is Visibility.PUBLIC
    assert found["Player.internal"].visibility is Visibility.PACKAGE
    assert found["Player.name"].visibility is Visibility.PROTECTED
    assert found["Player.Listener.onEvent"].visibility is Visibility.PUBLIC
    assert {"Player.State.IDLE", "Player.State.PLAYING"} <= set(found)


def test_java_overloads_are_folded() -> None:
    found = parse_declarations(
        "public class Api {\n    public void call(int a) {}\n    void call() {}\n}\n", "java")

    assert found["Api.call"].visibility is Visibility.PUBLIC
    assert " | " in found["Api.call"].signature


def test_kotlin_declarations() -> None:
    found = parse_declarations(KOTLIN_SOURCE, "kotlin")

    assert set(found) == {
        "Player", "Player.play", "Player.reset", "Player.state", "Player.MAX", "Player.create",
        "helper", "Registry", "Registry.register",
    }
    assert found["Player.reset"].visibility is Visibility.PRIVATE
    assert found["Player.state"].visibility is Visibility.INTERNAL
    assert found["helper"].visibility is Visibility.PRIVATE
    assert found["Player.play"].signature == "(speed:Int):Boolean"
    assert found["Player.state"].kind == "val"


@pytest.mark.parametrize(
    "source, language",
    [("def broken(:\n    pass\n", "python"), ("public class {", "java")],
)
def test_syntax_errors_raise(source, language) -> None:
    with pytest.raises(UnparseableSource):
        parse_declarations(source, language)


def test_unknown_language() -> None:
    with pytest.raises(ValueError):
        parse_declarations("", "cobol")


def test_visibility_ranking() -> None:
    assert Visibility.PUBLIC.is_exported
    assert Visibility.INTERNAL.is_exported
    assert not Visibility.PACKAGE.is_exported
    assert Visibility.PRIVATE.rank < Visibility.PROTECTED.rank < Visibility.PUBLIC.rank


def test_kotlin_multi_line_primary_constructor() -> None:
    source = textwrap.dedent('''
        class Player(
            val id: Int,
            private val source: String
        ) : Base(id) {
            fun play() {}
            fun stop() {}
        }
    ''')

    found = parse_declarations(source, "kotlin")

    assert set(found) == {"Player", "Player.play", "Player.stop"}
    assert found["Player"].signature == "(val id:Int, private val source:String):Base(id)"
    assert found["Player"].line == 2


def test_kotlin_multi_line_parameters_are_part_of_the_signature() -> None:
    before = parse_declarations("interface Loader {\n    fun load(\n        id: Int\n    )\n}\n", "kotlin")
    after = parse_declarations(
        "interface Loader {\n    fun load(\n        id: String,\n        force: Boolean\n    )\n}\n", "kotlin")

    assert before["Loader.load"].signature == "(id:Int)"
    assert after["Loader.load"].signature == "(id:String, force:Boolean)"


def test_kotlin_brace_on_the_next_line_opens_the_class_body() -> None:
    found = parse_declarations("class Player\n{\n    fun play() {}\n}\n", "kotlin")

    assert set(found) == {"Player", "Player.play"}


def test_kotlin_unclosed_header_is_unparseable() -> None:
    with pytest.raises(UnparseableSource):
        parse_declarations("fun load(\n    id: Int,\n", "kotlin")


def test_tree_sitter_extractors_must_define_a_visitor() -> None:
    from changescope.parsers.declaration_parser import _TreeSitterExtractor

    class Incomplete(_TreeSitterExtractor):
        language = "python"

    with pytest.raises(TypeError):
        Incomplete()
