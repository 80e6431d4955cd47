"""Tests for the KEY=value env file store."""

from voice_config.envfile import CONFIG_KEY, EnvFileStore, parse_env_text


def test_quote_stripping():
    env = parse_env_text("A=\"a=b\"\nB='x'\nC=plain\nD=\"unbalanced'\n")
    assert env == {"A": "a=b", "B": "x", "C": "plain", "D": "\"unbalanced'"}


def test_only_one_layer_of_quotes_is_removed():
    assert parse_env_text("A=\"'inner'\"") == {"A": "'inner'"}


def test_comments_blank_lines_and_lines_without_equals_are_skipped():
    text = "# comment\n\n   # indented comment\nNOT_A_PAIR\n  KEY = value with spaces  \r\nEMPTY=\n"
    assert parse_env_text(text) == {"KEY": "value with spaces", "EMPTY": ""}


def test_split_on_first_equals_keeps_base64_padding():
    assert parse_env_text("CONFIG_ENC=aa==:bb==:cc=") == {CONFIG_KEY: "aa==:bb==:cc="}


def test_missing_file_reads_as_empty(tmp_path):
    assert EnvFileStore(tmp_path / "missing.env").read() == {}


def test_write_creates_parent_directories(tmp_path):
    store = EnvFileStore(tmp_path / "nested" / "dir" / ".env")
    store.write({"A": "1", "B": "two"})
    assert store.path.read_text(encoding="utf-8") == "A=1\nB=two\n"
    assert store.read() == {"A": "1", "B": "two"}


def test_passthrough_keys_survive_a_rewrite(tmp_path):
    path = tmp_path / ".env"
    path.write_text("# header\nEXISTING=1\nQUOTED=\"keep me\"\n", encoding="utf-8")
    store = EnvFileStore(path)
    env = store.read()
    env["NEW_KEY"] = "v"
    store.write(env)
    assert store.read() == {"EXISTING": "1", "QUOTED": "keep me", "NEW_KEY": "v"}


def test_write_replaces_whole_file(tmp_path):
    store = EnvFileStore(tmp_path / ".env")
    store.write({"A": "1", "B": "2"})
    store.write({"B": "3"})
    assert store.read() == {"B": "3"}
    assert [p.name for p in tmp_path.iterdir()] == [".env"]


def test_byte_snapshots(tmp_path):
    store = EnvFileStore(tmp_path / ".env")
    assert store.read_bytes() is None
    store.write_bytes(b"A=1\n")
    assert store.read_bytes() == b"A=1\n"
    store.write_bytes(None)
    assert not store.exists()


def test_unicode_line_separators_stay_inside_values(tmp_path):
    text = "GREETING=Hello\u2028World\nFORM=a\x0cb\x1cc\nOTHER=1\r\n"
    assert parse_env_text(text) == {"GREETING": "Hello\u2028World", "FORM": "a\x0cb\x1cc", "OTHER": "1"}

    store = EnvFileStore(tmp_path / ".env")
    store.write(parse_env_text(text))
    assert store.read()["GREETING"] == "Hello\u2028World"
