from storescan.session.document import DocumentSnapshot, script_patterns, scan_document

ALL_LOOKUPS = ["meta-tag", "inline-script", "data-attribute", "global-state", "hidden-field"]


def _scan(html, globals_=None):
    return scan_document(DocumentSnapshot(html=html, url="https://example.test/", globals=globals_ or {}))


def test_meta_tag_wins_first():
    html = """
    <head><meta name="anti-csrftoken-a2z" content="meta-token"></head>
    <script>var cfg = {"anti-csrftoken-a2z": "script-token"};</script>
    """
    outcome = _scan(html)
    assert outcome.value == "meta-token"
    assert outcome.tried() == ["meta-tag"]


def test_inline_script_assignment():
    html = """<script>window.WholeFoodsConfig = {'anti-csrftoken-a2z': 'abc+/DEF=='};</script>"""
    outcome = _scan(html)
    assert outcome.value == "abc+/DEF=="
    assert outcome.winner == "inline-script"
    assert outcome.attempts[-1].message.startswith("script pattern")


def test_script_patterns_cover_quoting_styles():
    labels = [label for label, _ in script_patterns()]
    assert labels == ["standard", "flexible", "escaped", "window-assignment", "variable-assignment"]
    escaped = dict(script_patterns())["escaped"]
    match = escaped.search('{"anti-csrftoken-a2z":"a\\"b"}')
    assert match.group(1) == 'a\\"b'


def test_data_attribute_lookup():
    outcome = _scan('<div data-anti-csrftoken-a2z="attr-token"></div>')
    assert outcome.value == "attr-token"
    assert outcome.tried() == ALL_LOOKUPS[:3]


def test_global_state_lookup_uses_snapshot_globals():
    outcome = _scan("<html></html>", {"csrfToken": "global-token"})
    assert outcome.value == "global-token"
    assert outcome.attempts[-1].message == "window.csrfToken"


def test_hidden_field_is_the_last_resort():
    outcome = _scan('<form><input type="hidden" name="csrfToken" value="hidden-token"></form>')
    assert outcome.value == "hidden-token"
    assert outcome.tried() == ALL_LOOKUPS


def test_no_token_anywhere():
    outcome = _scan("<html><body><input type='text' name='_token' value='visible'></body></html>")
    assert not outcome.ok
    assert outcome.tried() == ALL_LOOKUPS
