"""
Tool name -> script method name, plus the static per-group alias,
top-level alias, and example tables used to build the capability surface.
"""

import re

from dbcodemode.core.config import settings

# Groups whose tool names use a prefix other than "<group>_"
GROUP_PREFIXES: dict[str, str] = {
    "sysschema": "sys_",
    "fulltext": "fulltext_",
    "docstore": "doc_",
    "transactions": "transaction_",
    "shell": "mysqlsh_",
}

# Stripping the prefix in these groups would collide with other groups' names
KEEP_PREFIX_GROUPS = frozenset({
    "fulltext",
    "sysschema",
    "docstore",
    "transactions",
    "cluster",
    "roles",
    "events",
})

_SNAKE_SEGMENT_RE = re.compile(r"_([a-z0-9])")


def tool_name_to_method_name(tool_name: str, group: str, tool_prefix: str | None = None) -> str:
    """
    mysql_read_query (core) -> readQuery
    mysql_json_extract (json) -> extract
    mysql_fulltext_search (fulltext) -> fulltextSearch
    mysql_sys_schema_stats (sysschema) -> sysSchemaStats
    """
    prefix = settings.CODEMODE_TOOL_PREFIX if tool_prefix is None else tool_prefix
    name = tool_name[len(prefix):] if prefix and tool_name.startswith(prefix) else tool_name
    group_prefix = GROUP_PREFIXES.get(group, f"{group}_")
    if group not in KEEP_PREFIX_GROUPS and name.startswith(group_prefix):
        name = name[len(group_prefix):]
    return _SNAKE_SEGMENT_RE.sub(lambda m: m.group(1).upper(), name)


# {group: {alias: canonical}}. Aliases that are Python keywords are left out
# because scripts could only reach them through getattr().
METHOD_ALIASES: dict[str, dict[str, str]] = {
    "json": {
        "jsonExtract": "extract",
        "jsonSet": "set",
        "jsonInsert": "insert",
        "jsonRemove": "remove",
        "jsonContains": "contains",
        "jsonKeys": "keys",
        "jsonReplace": "replace",
        "jsonGet": "get",
        "jsonSearch": "search",
        "jsonUpdate": "update",
        "jsonValidate": "validate",
        "jsonMerge": "merge",
        "jsonNormalize": "normalize",
        "jsonDiff": "diff",
        "jsonIndexSuggest": "indexSuggest",
        "jsonStats": "stats",
        "jsonArrayAppend": "arrayAppend",
    },
    "text": {
        "regex": "regexpMatch",
        "regexp": "regexpMatch",
        "like": "likeSearch",
        "pattern": "likeSearch",
        "sound": "soundex",
        "substr": "substring",
        "concatenate": "concat",
        "collation": "collationConvert",
    },
    "fulltext": {
        "create": "fulltextCreate",
        "drop": "fulltextDrop",
        "search": "fulltextSearch",
        "boolean": "fulltextBoolean",
        "expand": "fulltextExpand",
        "createIndex": "fulltextCreate",
        "dropIndex": "fulltextDrop",
        "naturalLanguage": "fulltextSearch",
        "booleanMode": "fulltextBoolean",
        "queryExpansion": "fulltextExpand",
    },
    "transactions": {
        "begin": "transactionBegin",
        "commit": "transactionCommit",
        "rollback": "transactionRollback",
        "savepoint": "transactionSavepoint",
        "release": "transactionRelease",
        "rollbackTo": "transactionRollbackTo",
        "execute": "transactionExecute",
    },
    "performance": {
        "queryPlan": "explain",
        "analyze": "explainAnalyze",
        "slowLog": "slowQueries",
        "slow": "slowQueries",
        "trace": "optimizerTrace",
        "bufferPool": "bufferPoolStats",
        "innodb": "innodbStatus",
        "stats": "tableStats",
        "threads": "threadStats",
        "health": "serverHealth",
        "processes": "showProcesslist",
        "processlist": "showProcesslist",
    },
    "optimization": {
        "recommend": "indexRecommendation",
        "indexAdvice": "indexRecommendation",
        "hint": "forceIndex",
        "forceHint": "forceIndex",
        "rewrite": "queryRewrite",
    },
    "admin": {
        "check": "checkTable",
        "repair": "repairTable",
        "optimize": "optimizeTable",
        "analyze": "analyzeTable",
        "flush": "flushTables",
        "kill": "killQuery",
        "pool": "poolStats",
    },
    "monitoring": {
        "status": "showStatus",
        "variables": "showVariables",
        "processes": "showProcesslist",
        "processlist": "showProcesslist",
        "queries": "queryStats",
        "slowlog": "slowQueries",
    },
    "backup": {
        "dump": "createDump",
        "export": "exportTable",
        "restore": "restoreDump",
    },
    "replication": {
        "status": "slaveStatus",
        "master": "masterStatus",
        "slave": "slaveStatus",
        "binlog": "binlogEvents",
        "gtid": "gtidStatus",
    },
    "partitioning": {
        "add": "addPartition",
        "drop": "dropPartition",
        "reorganize": "reorganizePartition",
        "info": "partitionInfo",
        "list": "partitionInfo",
    },
    "schema": {
        "views": "listViews",
        "functions": "listFunctions",
        "procedures": "listStoredProcedures",
        "triggers": "listTriggers",
        "constraints": "listConstraints",
        "schemas": "listSchemas",
        "createDb": "createSchema",
        "dropDb": "dropSchema",
    },
    "events": {
        "create": "eventCreate",
        "drop": "eventDrop",
        "alter": "eventAlter",
        "list": "eventList",
        "status": "eventStatus",
        "scheduler": "schedulerStatus",
    },
    "stats": {
        "summary": "descriptive",
        "percentile": "percentiles",
        "movingAverage": "timeSeries",
        "time_series": "timeSeries",
    },
    "spatial": {
        "addColumn": "createColumn",
        "addIndex": "createIndex",
        "dist": "distance",
        "distSphere": "distanceSphere",
        "pointInPolygon": "contains",
    },
    "security": {
        "ssl": "sslStatus",
        "encryption": "encryptionStatus",
        "firewall": "firewallStatus",
        "privileges": "userPrivileges",
        "password": "passwordValidate",
        "mask": "maskData",
        "sensitive": "sensitiveTables",
    },
    "cluster": {
        "status": "clusterStatus",
        "instances": "clusterInstances",
        "topology": "clusterTopology",
        "switchover": "clusterSwitchover",
        "routerStatus": "clusterRouterStatus",
    },
    "roles": {
        "create": "roleCreate",
        "drop": "roleDrop",
        "list": "roleList",
        "assign": "roleAssign",
        "grant": "roleGrant",
        "revoke": "roleRevoke",
        "grants": "roleGrants",
    },
    "docstore": {
        "add": "docAdd",
        "find": "docFind",
        "modify": "docModify",
        "remove": "docRemove",
        "createCollection": "docCreateCollection",
        "dropCollection": "docDropCollection",
        "listCollections": "docListCollections",
        "collectionInfo": "docCollectionInfo",
        "createIndex": "docCreateIndex",
    },
    "sysschema": {
        "schemaStats": "sysSchemaStats",
        "lockWaits": "sysInnodbLockWaits",
        "memory": "sysMemorySummary",
        "statements": "sysStatementSummary",
        "waits": "sysWaitSummary",
        "io": "sysIoSummary",
        "users": "sysUserSummary",
        "hosts": "sysHostSummary",
    },
    "router": {
        "metadata": "metadataStatus",
        "pool": "poolStatus",
        "connections": "routeConnections",
        "destinations": "routeDestinations",
        "blocked": "routeBlockedHosts",
    },
    "shell": {
        "run": "runScript",
        "script": "runScript",
        "upgrade": "checkUpgrade",
        "dump": "dumpInstance",
        "load": "loadDump",
        "export": "exportTable",
    },
}

# Methods reachable directly on the root object, e.g. mysql.readQuery()
TOP_LEVEL_METHODS: dict[str, tuple[str, ...]] = {
    "core": (
        "readQuery",
        "writeQuery",
        "listTables",
        "describeTable",
        "createTable",
        "dropTable",
        "createIndex",
        "getIndexes",
    ),
    "transactions": (
        "transactionBegin",
        "transactionCommit",
        "transactionRollback",
        "transactionSavepoint",
        "transactionRelease",
        "transactionRollbackTo",
        "transactionExecute",
    ),
    "performance": (
        "explain",
        "explainAnalyze",
        "slowQueries",
        "bufferPoolStats",
        "innodbStatus",
        "tableStats",
        "threadStats",
        "serverHealth",
    ),
    "admin": (
        "checkTable",
        "repairTable",
        "optimizeTable",
        "analyzeTable",
        "flushTables",
        "killQuery",
    ),
    "monitoring": ("showStatus", "showVariables", "showProcesslist", "queryStats"),
    "backup": ("createDump", "exportTable", "importData", "restoreDump"),
    "stats": (
        "descriptive",
        "percentiles",
        "correlation",
        "regression",
        "timeSeries",
        "distribution",
        "histogram",
        "sampling",
    ),
}

# Groups whose methods go on the root with the group name as prefix:
# mysql.jsonExtract() -> mysql.json.extract()
TOP_LEVEL_PREFIXED_GROUPS = frozenset({"json"})


def top_level_name(group: str, method: str) -> str:
    if group in TOP_LEVEL_PREFIXED_GROUPS:
        return f"{group}{method[:1].upper()}{method[1:]}"
    return method


def is_useful_alias(group: str, alias: str) -> bool:
    """Aliases that merely repeat the group name (jsonExtract) stay out of help()."""
    return not alias.lower().startswith(group.lower())


GROUP_EXAMPLES: dict[str, tuple[str, ...]] = {
    "core": (
        'await mysql.core.readQuery("SELECT * FROM users LIMIT 10")',
        'await mysql.core.describeTable("users")',
        'await mysql.core.writeQuery("UPDATE users SET active = 0 WHERE id = %s", {"params": [7]})',
        "await mysql.core.listTables()",
    ),
    "transactions": (
        "tx = await mysql.transactions.begin()",
        'await mysql.transactions.savepoint(tx["transactionId"], "sp1")',
        'await mysql.transactions.commit(tx["transactionId"])',
        'await mysql.transactions.execute([{"sql": "INSERT ..."}, {"sql": "UPDATE ..."}])',
    ),
    "json": (
        'await mysql.json.extract("docs", "data", "$.user.name")',
        'await mysql.json.merge(\'{"a": 1}\', \'{"b": 2}\')',
    ),
    "performance": (
        'await mysql.performance.explain("SELECT * FROM orders WHERE status = \'open\'")',
        "await mysql.performance.slowQueries({\"limit\": 10})",
        "await mysql.performance.bufferPoolStats()",
    ),
    "admin": (
        'await mysql.admin.optimizeTable("orders")',
        'await mysql.admin.checkTable({"table": "orders"})',
        "await mysql.admin.flushTables()",
    ),
    "monitoring": (
        'await mysql.monitoring.showStatus({"pattern": "Threads%"})',
        "await mysql.monitoring.showProcesslist()",
    ),
    "stats": (
        'await mysql.stats.descriptive("orders", "amount")',
        'await mysql.stats.percentiles("orders", "amount", [50, 95, 99])',
    ),
}
