"""
Oracle monitoring SQL

Every user-supplied value is a bind variable. Interpolated text, such
as the ORDER BY column or a dictionary view prefix, always comes from a
fixed whitelist.
"""

WAIT_EVENTS_SQL = """
SELECT
  e.event AS EVENT,
  e.wait_class AS WAIT_CLASS,
  e.total_waits AS TOTAL_WAITS,
  e.total_timeouts AS TOTAL_TIMEOUTS,
  e.time_waited AS TIME_WAITED,
  e.average_wait AS AVERAGE_WAIT,
  ROUND(e.time_waited_micro / 1000, 2) AS TIME_WAITED_MS,
  ROUND(e.time_waited_micro / 1000 / DECODE(e.total_waits, 0, 1, e.total_waits), 2) AS AVERAGE_WAIT_MS,
  e.wait_class_id AS WAIT_CLASS_ID,
  e.event_id AS EVENT_ID,
  ROUND(RATIO_TO_REPORT(e.time_waited) OVER () * 100, 2) AS PCT_TOTAL_TIME
FROM v$system_event e
WHERE e.wait_class <> 'Idle'
  AND (:wait_class IS NULL OR e.wait_class = :wait_class)
ORDER BY e.time_waited DESC
"""

WAIT_CLASS_SUMMARY_SQL = """
SELECT
  wait_class AS WAIT_CLASS,
  COUNT(*) AS EVENT_COUNT,
  SUM(total_waits) AS TOTAL_WAITS,
  ROUND(SUM(time_waited_micro) / 1000, 2) AS TIME_WAITED_MS
FROM v$system_event
WHERE wait_class <> 'Idle'
GROUP BY wait_class
ORDER BY TIME_WAITED_MS DESC
"""

SESSIONS_SQL = """
SELECT
  s.sid AS SID,
  s.serial# AS "SERIAL#",
  s.username AS USERNAME,
  s.osuser AS OSUSER,
  s.machine AS MACHINE,
  s.program AS PROGRAM,
  s.module AS MODULE,
  s.status AS STATUS,
  s.state AS STATE,
  s.sql_id AS SQL_ID,
  s.event AS EVENT,
  s.wait_class AS WAIT_CLASS,
  ROUND(s.wait_time_micro / 1000) AS WAIT_TIME_MS,
  (SELECT st.value * 10
     FROM v$sesstat st
     JOIN v$statname sn ON sn.statistic# = st.statistic#
    WHERE st.sid = s.sid AND sn.name = 'CPU used by this session') AS CPU_TIME_MS,
  NVL(io.block_gets, 0) + NVL(io.consistent_gets, 0) AS LOGICAL_READS,
  s.logon_time AS LOGON_TIME,
  s.last_call_et AS LAST_CALL_ET,
  s.blocking_session AS BLOCKING_SESSION,
  SUBSTR(q.sql_text, 1, 500) AS SQL_TEXT
FROM v$session s
LEFT JOIN v$sess_io io ON io.sid = s.sid
LEFT JOIN v$sqlarea q ON q.sql_id = s.sql_id
WHERE s.type = 'USER'
  AND (:status IS NULL OR s.status = :status)
ORDER BY s.last_call_et DESC
"""

SQL_STATISTICS_ORDER_COLUMNS = {
    "buffer_gets": "buffer_gets",
    "elapsed_time_ms": "elapsed_time",
    "cpu_time_ms": "cpu_time",
    "disk_reads": "disk_reads",
    "executions": "executions",
}

SQL_STATISTICS_SQL = """
SELECT
  sql_id AS SQL_ID,
  SUBSTR(sql_text, 1, 1000) AS SQL_TEXT,
  module AS MODULE,
  parsing_schema_name AS SCHEMA_NAME,
  executions AS EXECUTIONS,
  elapsed_time / 1000 AS ELAPSED_TIME_MS,
  cpu_time / 1000 AS CPU_TIME_MS,
  buffer_gets AS BUFFER_GETS,
  disk_reads AS DISK_READS,
  rows_processed AS ROWS_PROCESSED,
  elapsed_time / DECODE(executions, 0, 1, executions) / 1000 AS AVG_ELAPSED_TIME_MS,
  buffer_gets / DECODE(executions, 0, 1, executions) AS GETS_PER_EXEC,
  first_load_time AS FIRST_LOAD_TIME,
  last_active_time AS LAST_ACTIVE_TIME,
  plan_hash_value AS PLAN_HASH_VALUE
FROM v$sql
WHERE parsing_schema_name NOT IN ('SYS', 'SYSTEM')
  AND executions > 0
  AND (:min_elapsed_time IS NULL OR elapsed_time / DECODE(executions, 0, 1, executions) / 1000 >= :min_elapsed_time)
  AND (:min_buffer_gets IS NULL OR buffer_gets >= :min_buffer_gets)
  AND (:min_executions IS NULL OR executions >= :min_executions)
  AND (:module IS NULL OR module = :module)
ORDER BY {order_column} DESC
"""

EXECUTION_PLAN_SQL = """
SELECT
  p.id AS ID,
  p.parent_id AS PARENT_ID,
  p.depth AS DEPTH,
  p.operation AS OPERATION,
  p.options AS OPTIONS,
  p.object_owner AS OBJECT_OWNER,
  p.object_name AS OBJECT_NAME,
  p.cost AS COST,
  p.cardinality AS CARDINALITY,
  p.bytes AS BYTES,
  p.access_predicates AS ACCESS_PREDICATES,
  p.filter_predicates AS FILTER_PREDICATES
FROM v$sql_plan p
WHERE p.sql_id = :sql_id
  AND (:plan_hash_value IS NULL OR p.plan_hash_value = :plan_hash_value)
  AND p.child_number = (
    SELECT MIN(c.child_number) FROM v$sql_plan c
    WHERE c.sql_id = :sql_id
      AND (:plan_hash_value IS NULL OR c.plan_hash_value = :plan_hash_value)
  )
ORDER BY p.id
"""

INSTANCE_SQL = """
SELECT
  i.instance_name AS INSTANCE_NAME,
  i.host_name AS HOST_NAME,
  i.version AS VERSION,
  i.status AS STATUS,
  i.startup_time AS STARTUP_TIME,
  i.database_status AS DATABASE_STATUS
FROM v$instance i
"""

SESSION_COUNTS_SQL = """
SELECT
  COUNT(*) AS TOTAL_SESSIONS,
  SUM(CASE WHEN status = 'ACTIVE' THEN 1 ELSE 0 END) AS ACTIVE_SESSIONS,
  SUM(CASE WHEN blocking_session IS NOT NULL THEN 1 ELSE 0 END) AS BLOCKED_SESSIONS
FROM v$session
WHERE type = 'USER'
"""

TABLESPACE_USAGE_SQL = """
SELECT
  df.tablespace_name AS TABLESPACE_NAME,
  ROUND(df.total_mb, 2) AS TOTAL_MB,
  ROUND(df.total_mb - NVL(fs.free_mb, 0), 2) AS USED_MB,
  ROUND((df.total_mb - NVL(fs.free_mb, 0)) / df.total_mb * 100, 2) AS USED_PCT
FROM (
  SELECT tablespace_name, SUM(bytes) / 1048576 AS total_mb
  FROM dba_data_files GROUP BY tablespace_name
) df
LEFT JOIN (
  SELECT tablespace_name, SUM(bytes) / 1048576 AS free_mb
  FROM dba_free_space GROUP BY tablespace_name
) fs ON fs.tablespace_name = df.tablespace_name
ORDER BY USED_PCT DESC
"""

# Collection snapshot of the heaviest cursors
COLLECT_SQL_STATISTICS_SQL = """
SELECT * FROM (
  SELECT
    sql_id AS SQL_ID,
    plan_hash_value AS PLAN_HASH_VALUE,
    module AS MODULE,
    parsing_schema_name AS SCHEMA_NAME,
    SUBSTR(sql_text, 1, 1000) AS SQL_TEXT,
    elapsed_time / 1000 AS ELAPSED_TIME_MS,
    cpu_time / 1000 AS CPU_TIME_MS,
    buffer_gets AS BUFFER_GETS,
    disk_reads AS DISK_READS,
    executions AS EXECUTIONS,
    rows_processed AS ROWS_PROCESSED,
    elapsed_time / DECODE(executions, 0, 1, executions) / 1000 AS AVG_ELAPSED_TIME_MS,
    buffer_gets / DECODE(executions, 0, 1, executions) AS GETS_PER_EXEC
  FROM v$sql
  WHERE parsing_schema_name NOT IN ('SYS', 'SYSTEM')
    AND executions > 0
  ORDER BY elapsed_time DESC
)
WHERE rownum <= :top_n
"""

GATHER_TABLE_STATS_PLSQL = """
BEGIN
  DBMS_STATS.GATHER_TABLE_STATS(
    ownname          => :owner,
    tabname          => :table_name,
    estimate_percent => :estimate_percent,
    method_opt       => :method_opt,
    degree           => :degree,
    cascade          => (:cascade = 1)
  );
END;
"""

ADVISOR_RECOMMENDATIONS_SQL = """
SELECT
  r.rec_id AS REC_ID,
  r.rank AS RANK,
  r.type AS TYPE,
  r.benefit AS BENEFIT
FROM user_advisor_recommendations r
WHERE r.task_name = :task_name
ORDER BY r.rank
"""

ADVISOR_ACTIONS_SQL = """
SELECT
  a.action_id AS ACTION_ID,
  a.command AS COMMAND,
  a.attr1 AS ATTR1,
  a.attr2 AS ATTR2,
  a.attr3 AS ATTR3,
  a.attr4 AS ATTR4,
  a.attr5 AS ATTR5
FROM user_advisor_actions a
WHERE a.task_name = :task_name
  AND a.rec_id = :rec_id
ORDER BY a.action_id
"""

ADVISOR_SCRIPT_SQL = "SELECT DBMS_ADVISOR.GET_TASK_SCRIPT(:task_name) AS SCRIPT FROM DUAL"

ADVISOR_REPORT_SQL = "SELECT DBMS_ADVISOR.GET_TASK_REPORT(:task_name, 'TEXT', 'ALL') AS REPORT FROM DUAL"

LOCKS_SQL = """
SELECT
  l.session_id AS HOLDING_SESSION,
  s.serial# AS HOLDING_SERIAL,
  s.username AS HOLDING_USERNAME,
  s.osuser AS HOLDING_OSUSER,
  s.machine AS HOLDING_MACHINE,
  s.program AS HOLDING_PROGRAM,
  l.oracle_username AS ORACLE_USERNAME,
  l.os_user_name AS OS_USER_NAME,
  l.process AS PROCESS,
  l.object_id AS OBJECT_ID,
  o.owner AS OBJECT_OWNER,
  o.object_name AS OBJECT_NAME,
  o.object_type AS OBJECT_TYPE,
  l.locked_mode AS LOCKED_MODE,
  DECODE(l.locked_mode,
    0, 'None',
    1, 'Null',
    2, 'Row-S (SS)',
    3, 'Row-X (SX)',
    4, 'Share',
    5, 'S/Row-X (SSX)',
    6, 'Exclusive',
    'Unknown') AS LOCK_MODE_NAME,
  s.last_call_et AS LOCK_DURATION_SEC,
  s.sql_id AS SQL_ID,
  SUBSTR(q.sql_text, 1, 500) AS SQL_TEXT,
  w.sid AS WAITING_SESSION,
  w.serial# AS WAITING_SERIAL,
  w.username AS WAITING_USERNAME,
  w.event AS WAITING_EVENT,
  w.wait_time AS WAIT_TIME,
  w.seconds_in_wait AS SECONDS_IN_WAIT
FROM v$locked_object l
JOIN dba_objects o ON o.object_id = l.object_id
JOIN v$session s ON s.sid = l.session_id
LEFT JOIN v$sqlarea q ON q.sql_id = s.sql_id
LEFT JOIN v$session w ON w.blocking_session = l.session_id
WHERE (:object_type IS NULL OR o.object_type = :object_type)
ORDER BY s.last_call_et DESC, l.session_id
"""

# Samples come from the in-memory buffer first, then from AWR history
ASH_SAMPLE_SOURCES = ("v$active_session_history", "dba_hist_active_sess_history")

ASH_SAMPLES_SQL = """
SELECT * FROM (
  SELECT
    sample_id AS SAMPLE_ID,
    sample_time AS SAMPLE_TIME,
    session_id AS SESSION_ID,
    session_serial# AS SESSION_SERIAL,
    user_id AS USER_ID,
    sql_id AS SQL_ID,
    sql_plan_hash_value AS SQL_PLAN_HASH_VALUE,
    event AS EVENT,
    wait_class AS WAIT_CLASS,
    wait_time AS WAIT_TIME,
    session_state AS SESSION_STATE,
    blocking_session AS BLOCKING_SESSION,
    program AS PROGRAM,
    module AS MODULE,
    machine AS MACHINE
  FROM {source}
  WHERE sample_time >= TO_TIMESTAMP(:start_time, 'YYYY-MM-DD HH24:MI:SS')
    AND sample_time <= TO_TIMESTAMP(:end_time, 'YYYY-MM-DD HH24:MI:SS')
  ORDER BY sample_time DESC
)
WHERE rownum <= 5000
"""

AWR_SNAPSHOTS_SQL = """
SELECT * FROM (
  SELECT
    snap_id AS SNAP_ID,
    end_interval_time AS SNAP_TIME,
    begin_interval_time AS BEGIN_TIME,
    startup_time AS STARTUP_TIME,
    instance_number AS INSTANCE_NUMBER
  FROM dba_hist_snapshot
  ORDER BY snap_id DESC
)
WHERE rownum <= 100
"""

# ============================================================================
# SQL TUNING ADVISOR
# ============================================================================

# Dictionary views are tried as DBA_ first and USER_ when that is not granted
ADVISOR_VIEW_PREFIXES = ("DBA", "USER")

CREATE_TUNING_TASK_BY_TEXT_PLSQL = """
DECLARE
  l_task_name VARCHAR2(128);
BEGIN
  l_task_name := DBMS_SQLTUNE.CREATE_TUNING_TASK(
    sql_text    => :sql_text,
    task_name   => :task_name,
    time_limit  => :time_limit,
    description => :description
  );
END;
"""

CREATE_TUNING_TASK_BY_SQL_ID_PLSQL = """
DECLARE
  l_task_name VARCHAR2(128);
BEGIN
  l_task_name := DBMS_SQLTUNE.CREATE_TUNING_TASK(
    sql_id      => :sql_id,
    task_name   => :task_name,
    time_limit  => :time_limit,
    description => :description
  );
END;
"""

EXECUTE_TUNING_TASK_PLSQL = """
BEGIN
  DBMS_SQLTUNE.EXECUTE_TUNING_TASK(task_name => :task_name);
END;
"""

TUNING_TASKS_SQL = """
SELECT * FROM (
  SELECT
    t.task_id AS TASK_ID,
    t.task_name AS TASK_NAME,
    {owner} AS OWNER,
    t.status AS STATUS,
    t.description AS DESCRIPTION,
    t.created AS CREATED,
    t.last_modified AS LAST_MODIFIED,
    t.execution_start AS EXECUTION_START,
    t.execution_end AS EXECUTION_END,
    (SELECT COUNT(*) FROM {prefix}_advisor_findings f
      WHERE f.task_id = t.task_id) AS FINDING_COUNT
  FROM {prefix}_advisor_tasks t
  WHERE t.advisor_name = 'SQL Tuning Advisor'
  ORDER BY t.created DESC
)
WHERE rownum <= 100
"""

TUNING_TASK_STATUS_SQL = """
SELECT
  t.status AS STATUS,
  t.execution_start AS EXECUTION_START,
  t.execution_end AS EXECUTION_END
FROM {prefix}_advisor_tasks t
WHERE t.task_name = :task_name
  AND t.advisor_name = 'SQL Tuning Advisor'
"""

TUNING_FINDING_COUNT_SQL = """
SELECT COUNT(*) AS FINDING_COUNT
FROM {prefix}_advisor_findings
WHERE task_name = :task_name
"""

TUNING_FINDINGS_SQL = """
SELECT
  f.finding_id AS FINDING_ID,
  f.type AS FINDING_TYPE,
  f.message AS FINDING_MESSAGE,
  f.impact AS IMPACT,
  r.rec_id AS REC_ID,
  r.type AS REC_TYPE,
  r.benefit AS REC_BENEFIT,
  a.action_id AS ACTION_ID,
  a.command AS ACTION_COMMAND,
  a.message AS ACTION_MESSAGE,
  a.attr1 AS ATTR1,
  a.attr2 AS ATTR2,
  a.attr3 AS ATTR3
FROM {prefix}_advisor_findings f
LEFT JOIN {prefix}_advisor_recommendations r
  ON r.task_id = f.task_id AND r.finding_id = f.finding_id
LEFT JOIN {prefix}_advisor_actions a
  ON a.task_id = r.task_id AND a.rec_id = r.rec_id
WHERE f.task_name = :task_name
ORDER BY f.impact DESC NULLS LAST, f.finding_id, r.rec_id, a.action_id
"""

TUNING_REPORT_SQL = "SELECT DBMS_SQLTUNE.REPORT_TUNING_TASK(:task_name) AS REPORT FROM DUAL"

TUNING_SCRIPT_SQL = "SELECT DBMS_SQLTUNE.SCRIPT_TUNING_TASK(:task_name) AS SCRIPT FROM DUAL"

SQL_PROFILES_SQL = """
SELECT
  p.name AS NAME,
  p.category AS CATEGORY,
  p.signature AS SIGNATURE,
  SUBSTR(p.sql_text, 1, 1000) AS SQL_TEXT,
  p.type AS TYPE,
  p.status AS STATUS,
  p.force_matching AS FORCE_MATCHING,
  p.created AS CREATED,
  p.last_modified AS LAST_MODIFIED,
  p.description AS DESCRIPTION,
  p.task_exec_name AS TASK_EXEC_NAME
FROM {prefix}_sql_profiles p
ORDER BY p.created DESC
"""

ACCEPT_SQL_PROFILE_PLSQL = """
BEGIN
  DBMS_SQLTUNE.ACCEPT_SQL_PROFILE(
    task_name   => :task_name,
    name        => :profile_name,
    category    => :category,
    force_match => (:force_match = 1),
    replace     => (:replace = 1)
  );
END;
"""

# ============================================================================
# SQL ACCESS ADVISOR TASKS
# ============================================================================

# Removes a previous task and workload of the same name, if any
DROP_ACCESS_TASK_PLSQL = """
BEGIN
  BEGIN
    DBMS_ADVISOR.DELETE_SQLWKLD_REF(:task_name, :workload_name);
  EXCEPTION WHEN OTHERS THEN NULL;
  END;
  BEGIN
    DBMS_ADVISOR.DELETE_SQLWKLD(:workload_name);
  EXCEPTION WHEN OTHERS THEN NULL;
  END;
  BEGIN
    DBMS_ADVISOR.DELETE_TASK(:task_name);
  EXCEPTION WHEN OTHERS THEN NULL;
  END;
END;
"""

CREATE_ACCESS_TASK_PLSQL = """
DECLARE
  l_task_id   NUMBER;
  l_task_name VARCHAR2(128) := :task_name;
BEGIN
  DBMS_ADVISOR.CREATE_TASK(DBMS_ADVISOR.SQLACCESS_ADVISOR, l_task_id, l_task_name, :description);
  DBMS_ADVISOR.SET_TASK_PARAMETER(l_task_name, 'TIME_LIMIT', :time_limit);
  DBMS_ADVISOR.SET_TASK_PARAMETER(l_task_name, 'ANALYSIS_SCOPE', :analysis_scope);
END;
"""

CREATE_ACCESS_WORKLOAD_PLSQL = """
BEGIN
  DBMS_ADVISOR.CREATE_SQLWKLD(:workload_name, 'Workload for ' || :task_name);
END;
"""

# Adds the heaviest cached DML and queries; statements the advisor rejects are skipped
POPULATE_ACCESS_WORKLOAD_PLSQL = """
DECLARE
  l_workload VARCHAR2(128) := :workload_name;
BEGIN
  FOR stmt IN (
    SELECT * FROM (
      SELECT sql_id, sql_fulltext, parsing_schema_name, module, action,
             executions, elapsed_time, cpu_time, buffer_gets, disk_reads, rows_processed
      FROM v$sql
      WHERE parsing_schema_name NOT IN ('SYS', 'SYSTEM')
        AND command_type IN (2, 3, 6, 7)
        AND executions > 0
      ORDER BY elapsed_time DESC
    )
    WHERE rownum <= :max_statements
  ) LOOP
    BEGIN
      DBMS_ADVISOR.ADD_SQLWKLD_STATEMENT(
        workload_name    => l_workload,
        module           => NVL(stmt.module, 'UNKNOWN'),
        action           => NVL(stmt.action, 'UNKNOWN'),
        cpu_time         => stmt.cpu_time,
        elapsed_time     => stmt.elapsed_time,
        disk_reads       => stmt.disk_reads,
        buffer_gets      => stmt.buffer_gets,
        rows_processed   => stmt.rows_processed,
        optimizer_cost   => 0,
        executions       => stmt.executions,
        priority         => 2,
        last_execution_date => SYSDATE,
        stat_period      => 0,
        username         => stmt.parsing_schema_name,
        sql_text         => stmt.sql_fulltext
      );
    EXCEPTION WHEN OTHERS THEN NULL;
    END;
  END LOOP;
END;
"""

LINK_ACCESS_WORKLOAD_PLSQL = """
BEGIN
  DBMS_ADVISOR.ADD_SQLWKLD_REF(:task_name, :workload_name);
END;
"""

ACCESS_WORKLOAD_COUNT_SQL = """
SELECT COUNT(*) AS STATEMENT_COUNT
FROM user_advisor_sqlw_stmts
WHERE workload_name = :workload_name
"""

# EXECUTE_TASK runs for minutes, so it is handed to a one-shot scheduler job
SUBMIT_ACCESS_TASK_JOB_PLSQL = """
BEGIN
  DBMS_SCHEDULER.CREATE_JOB(
    job_name   => :job_name,
    job_type   => 'PLSQL_BLOCK',
    job_action => 'BEGIN DBMS_ADVISOR.EXECUTE_TASK(''' || :task_name || '''); END;',
    enabled    => TRUE,
    auto_drop  => TRUE
  );
END;
"""

ACCESS_TASKS_SQL = """
SELECT * FROM (
  SELECT
    t.task_id AS TASK_ID,
    t.task_name AS TASK_NAME,
    {owner} AS OWNER,
    t.status AS STATUS,
    t.description AS DESCRIPTION,
    t.created AS CREATED,
    t.last_modified AS LAST_MODIFIED,
    t.execution_start AS EXECUTION_START,
    t.execution_end AS EXECUTION_END,
    (SELECT COUNT(*) FROM {prefix}_advisor_recommendations r
      WHERE r.task_id = t.task_id) AS RECOMMENDATION_COUNT
  FROM {prefix}_advisor_tasks t
  WHERE t.advisor_name = 'SQL Access Advisor'
  ORDER BY t.created DESC
)
WHERE rownum <= 100
"""
