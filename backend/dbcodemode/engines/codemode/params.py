"""
Positional-argument normalization for capability calls.

Turns ``mysql.core.readQuery("SELECT 1")`` into ``{"sql": "SELECT 1"}`` and
``mysql.stats.percentiles("orders", "amount", [50, 95])`` into the keyword
object the operation validates. Never raises: anything it cannot map is
passed through so the operation's own validation decides.
"""

from collections.abc import Mapping, Sequence
from typing import Any

# method -> first positional key (str) or ordered keys (tuple)
POSITIONAL_PARAMS: dict[str, str | tuple[str, ...]] = {
    # core
    "readQuery": "sql",
    "writeQuery": "sql",
    "describeTable": "table",
    "dropTable": "table",
    "listTables": "database",
    "getIndexes": "table",
    "dropIndex": "name",
    "createTable": ("name", "columns"),
    "createIndex": ("table", "columns"),
    # schema
    "createSchema": "name",
    "dropSchema": "name",
    "listSchemas": "pattern",
    "listViews": "database",
    "listFunctions": "database",
    "listStoredProcedures": "database",
    "listTriggers": "table",
    "listConstraints": "table",
    "createView": ("name", "sql"),
    # json
    "extract": ("table", "column", "path", "where"),
    "set": ("table", "column", "path", "value", "where"),
    "insert": ("table", "column", "path", "value", "where"),
    "remove": ("table", "column", "path", "where"),
    "contains": ("table", "column", "value"),
    "keys": ("table", "column", "where"),
    "replace": ("table", "column", "path", "value", "where"),
    "get": ("table", "column", "path"),
    "search": ("table", "column", "searchValue"),
    "update": ("table", "column", "path", "value", "where"),
    "validate": ("table", "column"),
    "stats": ("table", "column"),
    "indexSuggest": ("table", "column"),
    "normalize": ("table", "column"),
    "merge": ("json1", "json2"),
    "diff": ("json1", "json2"),
    "arrayAppend": ("table", "column", "path", "value"),
    # text
    "regexpMatch": ("table", "column", "pattern"),
    "likeSearch": ("table", "column", "pattern"),
    "soundex": ("table", "column", "value"),
    "substring": ("table", "column"),
    "concat": ("table", "columns"),
    "collationConvert": ("table", "column", "collation"),
    # fulltext
    "fulltextCreate": ("table", "columns"),
    "fulltextDrop": ("table", "indexName"),
    "fulltextSearch": ("table", "columns", "query"),
    "fulltextBoolean": ("table", "columns", "query"),
    "fulltextExpand": ("table", "columns", "query"),
    # transactions
    "transactionCommit": "transactionId",
    "transactionRollback": "transactionId",
    "transactionSavepoint": ("transactionId", "name"),
    "transactionRelease": ("transactionId", "name"),
    "transactionRollbackTo": ("transactionId", "name"),
    # performance
    "explain": "sql",
    "explainAnalyze": "sql",
    # admin
    "checkTable": "table",
    "repairTable": "table",
    "optimizeTable": "table",
    "analyzeTable": "table",
    # backup
    "createDump": "tables",
    "exportTable": "table",
    "importData": "table",
    "restoreDump": "filename",
    # stats
    "descriptive": ("table", "column"),
    "percentiles": ("table", "column", "percentiles"),
    "distribution": ("table", "column"),
    "histogram": ("table", "column", "buckets"),
    "correlation": ("table", "column1", "column2"),
    "regression": ("table", "xColumn", "yColumn"),
    "sampling": ("table", "sampleSize"),
    "timeSeries": ("table", "timeColumn", "valueColumn"),
    # partitioning
    "addPartition": ("table", "partitionName", "partitionType", "value"),
    "dropPartition": ("table", "partitionName"),
    "reorganizePartition": ("table", "partitions"),
    "partitionInfo": "table",
    # spatial
    "distance": ("table", "spatialColumn"),
    "distanceSphere": ("table", "spatialColumn"),
    "point": ("longitude", "latitude"),
    "polygon": "coordinates",
    # shell (exportTable is shared with backup)
    "checkUpgrade": "targetVersion",
    "runScript": ("script", "language"),
    "importTable": ("inputPath", "schema", "table"),
    "importJson": ("inputPath", "schema", "collection"),
    "dumpInstance": "outputDir",
    "dumpSchemas": ("schemas", "outputDir"),
    "dumpTables": ("schema", "tables", "outputDir"),
    "loadDump": "inputDir",
    # security
    "passwordValidate": "password",
}

# methods where a single list argument is wrapped under a key
ARRAY_WRAP_PARAMS: dict[str, str] = {
    "transactionExecute": "statements",
}

# keys filled when a lone primitive has no mapping; the operation picks its own
FALLBACK_KEYS: tuple[str, ...] = ("sql", "query", "table", "name")


def _is_object(value: Any) -> bool:
    return isinstance(value, Mapping)


def _is_array(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _is_primitive(value: Any) -> bool:
    return isinstance(value, (str, int, float))


def _merge_trailing(result: dict[str, Any], args: Sequence[Any]) -> dict[str, Any]:
    if len(args) > 1 and _is_object(args[-1]):
        result.update(args[-1])
    return result


def normalize_params(
    method: str,
    args: Sequence[Any],
    *,
    positional: Mapping[str, str | tuple[str, ...]] = POSITIONAL_PARAMS,
    array_wrap: Mapping[str, str] = ARRAY_WRAP_PARAMS,
) -> Any:
    """Convert call arguments into the parameter object for *method*."""
    if len(args) == 0:
        return {}

    wrap_key = array_wrap.get(method)
    mapping = positional.get(method)

    if len(args) == 1:
        arg = args[0]
        if arg is None:
            return {}
        if _is_object(arg):
            return arg
        if _is_array(arg):
            return {wrap_key: list(arg)} if wrap_key is not None else arg
        if _is_primitive(arg):
            if isinstance(mapping, str):
                return {mapping: arg}
            if mapping:
                return {mapping[0]: arg}
            return {key: arg for key in FALLBACK_KEYS}
        return arg

    if _is_array(args[0]) and wrap_key is not None:
        return _merge_trailing({wrap_key: list(args[0])}, args)

    if mapping is None:
        return args[0] if args[0] is not None else {}

    if isinstance(mapping, str):
        return _merge_trailing({mapping: args[0]}, args)

    last = args[-1]
    last_is_options = _is_object(last) and any(k in mapping for k in last)
    to_map = len(args) - 1 if last_is_options else len(args)
    result: dict[str, Any] = {}
    for key, value in zip(mapping, args[:to_map]):
        result[key] = value
    if (len(args) > len(mapping) or last_is_options) and _is_object(last):
        result.update(last)
    return result
