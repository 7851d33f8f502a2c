from doctrine_rag.retrieval.query_expander import DEFAULT_TEMPLATES, QueryExpander


def test_expand_starts_with_original_query():
    """
    Test that the original query is always the first term.
    """
    expander = QueryExpander()

    for query in ("What are the steps in MDMP?", "Who signs the award?", ""):
        assert expander.expand(query)[0] == query


def test_expand_is_deterministic():
    expander = QueryExpander()
    query = "How does the S6 support planning?"

    assert expander.expand(query) == expander.expand(query)


def test_expand_replaces_abbreviation_with_variants():
    """
    Test that a known abbreviation is replaced by each of its variants.
    """
    terms = QueryExpander().expand("What are the steps in MDMP?")

    assert "What are the steps in Military Decision Making Process?" in terms
    assert "What are the steps in military decision making process?" in terms


def test_expand_deduplicates_in_first_seen_order():
    """
    Test that the identity variant does not duplicate the original query.
    """
    terms = QueryExpander().expand("What are the steps in MDMP?")

    assert terms.count("What are the steps in MDMP?") == 1
    assert len(terms) == len(set(terms))
    assert terms == [
        "What are the steps in MDMP?",
        "What are the steps in Military Decision Making Process?",
        "What are the steps in military decision making process?",
    ]


def test_expand_is_case_insensitive():
    terms = QueryExpander().expand("who is the s6 officer")

    assert "who is the G6 officer" in terms
    assert "who is the Signal Officer officer" in terms


def test_expand_appends_planning_templates():
    """
    Test that the ``planning`` trigger appends its reformulations after substitutions.
    """
    query = "Explain the planning timeline"
    terms = QueryExpander().expand(query)

    assert terms[0] == query
    assert "Explain the plan timeline" in terms
    assert terms[-len(DEFAULT_TEMPLATES["planning"]):] == DEFAULT_TEMPLATES["planning"]


def test_expand_without_known_terms_returns_only_query():
    assert QueryExpander().expand("Who approves the award?") == ["Who approves the award?"]


def test_custom_tables_override_defaults():
    expander = QueryExpander(terms={"OPORD": ["operation order"]}, templates={})

    assert expander.expand("Write an OPORD") == ["Write an OPORD", "Write an operation order"]
    assert expander.expand("MDMP") == ["MDMP"]
