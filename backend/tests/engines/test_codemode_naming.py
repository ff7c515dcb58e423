"""Unit tests for engines.codemode.naming."""

import pytest

from dbcodemode.engines.codemode.naming import (
    METHOD_ALIASES,
    is_useful_alias,
    tool_name_to_method_name,
    top_level_name,
)


class TestToolNameToMethodName:
    @pytest.mark.parametrize(
        ("tool_name", "group", "expected"),
        [
            ("mysql_read_query", "core", "readQuery"),
            ("mysql_describe_table", "core", "describeTable"),
            ("mysql_json_extract", "json", "extract"),
            ("mysql_json_array_append", "json", "arrayAppend"),
            ("mysql_optimize_table", "admin", "optimizeTable"),
            ("mysql_fulltext_search", "fulltext", "fulltextSearch"),
            ("mysql_sys_schema_stats", "sysschema", "sysSchemaStats"),
            ("mysql_doc_find", "docstore", "docFind"),
            ("mysql_transaction_begin", "transactions", "transactionBegin"),
            ("mysql_cluster_status", "cluster", "clusterStatus"),
            ("mysql_role_create", "roles", "roleCreate"),
            ("mysql_event_list", "events", "eventList"),
            ("mysqlsh_run_script", "shell", "runScript"),
        ],
    )
    def test_known_tools(self, tool_name: str, group: str, expected: str) -> None:
        assert tool_name_to_method_name(tool_name, group, "mysql_") == expected

    def test_without_server_prefix(self) -> None:
        assert tool_name_to_method_name("list_tables", "core", "mysql_") == "listTables"

    def test_custom_server_prefix(self) -> None:
        assert tool_name_to_method_name("pg_read_query", "core", "pg_") == "readQuery"

    def test_digits_in_segments(self) -> None:
        assert tool_name_to_method_name("mysql_stats_top_10", "stats", "mysql_") == "top10"


class TestAliases:
    def test_useful_alias_hides_group_prefixed_names(self) -> None:
        assert is_useful_alias("json", "jsonExtract") is False
        assert is_useful_alias("json", "JSONExtract") is False
        assert is_useful_alias("performance", "slowLog") is True

    def test_alias_tables_contain_no_python_keywords(self) -> None:
        import keyword

        for group, aliases in METHOD_ALIASES.items():
            for alias in aliases:
                assert not keyword.iskeyword(alias), f"{group}.{alias}"

    def test_top_level_name(self) -> None:
        assert top_level_name("json", "extract") == "jsonExtract"
        assert top_level_name("core", "readQuery") == "readQuery"
