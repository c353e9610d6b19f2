from plugin_data import CONTEXT_KEY, DocumentDataStore, get_project_context, set_project_context


def test_missing_values_read_as_empty_string(tmp_path):
    store = DocumentDataStore(tmp_path)
    assert store.get_plugin_data("abc", CONTEXT_KEY) == ""


def test_values_persist_across_instances(tmp_path):
    set_project_context(DocumentDataStore(tmp_path), "abc", "Checkout redesign for admins")
    assert get_project_context(DocumentDataStore(tmp_path), "abc") == "Checkout redesign for admins"


def test_keys_are_independent_per_document(tmp_path):
    store = DocumentDataStore(tmp_path)
    store.set_plugin_data("one", "k", "1")
    store.set_plugin_data("one", "other", "2")
    store.set_plugin_data("two", "k", "3")
    assert store.get_plugin_data("one", "k") == "1"
    assert store.get_plugin_data("one", "other") == "2"
    assert store.get_plugin_data("two", "k") == "3"


def test_unsafe_file_keys_stay_inside_base_dir(tmp_path):
    store = DocumentDataStore(tmp_path)
    store.set_plugin_data("../../etc/passwd", "k", "v")
    assert store.get_plugin_data("../../etc/passwd", "k") == "v"
    assert all(p.parent == tmp_path for p in tmp_path.iterdir())


def test_corrupt_document_reads_as_empty(tmp_path):
    store = DocumentDataStore(tmp_path)
    store.set_plugin_data("abc", "k", "v")
    (tmp_path / "abc.json").write_text("{broken", encoding="utf-8")
    assert store.get_plugin_data("abc", "k") == ""


def test_invalid_utf8_document_reads_as_empty(tmp_path):
    store = DocumentDataStore(tmp_path)
    (tmp_path / "abc.json").write_bytes(b'{"copy-assistant-context": "\xff\xfe"}')
    assert get_project_context(store, "abc") == ""


def test_unreadable_document_reads_as_empty(tmp_path):
    store = DocumentDataStore(tmp_path)
    # A directory where the document file should be makes read_text fail
    (tmp_path / "abc.json").mkdir()
    assert store.get_plugin_data("abc", CONTEXT_KEY) == ""
