# -*- coding: utf-8 -*-

import datetime

import pytest
import requests

import check_veeam_sessions
import nagios_stuff
import veeam_helpers
from conftest import FakeConnection, FakeResponse, makeSession, paged, sessionJson

HOUR = datetime.timedelta(hours = 1)

CONNECTION_ARGS = ["-H", "veeam.example.org", "-u", "monitor", "-p", "secret"]


@pytest.mark.parametrize("result, severity", [
    ("Success", 0),
    ("Warning", 1),
    ("Failed", 2),
    ("None", 3),
    ("", 3),
    (None, 3),
    ("success", 3),
])
def test_session_severity(result, severity) :
    assert check_veeam_sessions.sessionSeverity(result) == severity


def test_select_recent_sessions(now) :
    sessions = [
        makeSession("ended in window", "Success", endTime = now - 2 * HOUR),
        makeSession("created in window", "Success", endTime = None,
                    creationTime = now - 3 * HOUR, state = "Stopped"),
        makeSession("running", "None", endTime = None,
                    creationTime = now - 100 * HOUR, state = "Working"),
        makeSession("too old", "Failed", endTime = now - 30 * HOUR),
        makeSession("replica", "Failed", endTime = now - HOUR, jobType = "ReplicaJob"),
    ]
    selected = check_veeam_sessions.selectRecentSessions(sessions, 24, now)
    assert [s.jobName for s in selected] == ["ended in window",
                                             "created in window",
                                             "running"]


def test_latest_session_per_job(now) :
    sessions = [
        makeSession("Job B", "Failed", endTime = now - 5 * HOUR),
        makeSession("Job A", "Failed", endTime = now - 5 * HOUR),
        makeSession("Job A", "Success", endTime = now - HOUR),
        makeSession("Job A", "Warning", endTime = now - 3 * HOUR),
        makeSession("Job A", "None", endTime = None, state = "Working",
                    creationTime = now - HOUR / 2),
    ]
    latest = check_veeam_sessions.latestSessionPerJob(sessions)
    assert [(s.jobName, s.result) for s in latest] == [("Job A", "Success"),
                                                       ("Job B", "Failed")]


def test_only_running_session_is_kept(now) :
    running = makeSession("Job A", "None", endTime = None, state = "Working",
                          creationTime = now - HOUR)
    assert check_veeam_sessions.latestSessionPerJob([running]) == [running]


def test_failed_session_is_critical(now) :
    sessions = [makeSession("Job A", "Success", endTime = now - HOUR),
                makeSession("Job B", "Failed", endTime = now - HOUR)]
    (rc, summary, perf) = check_veeam_sessions.evaluateSessions(sessions, 24)
    assert rc == nagios_stuff.NAGIOS_RC_CRITICAL
    assert summary == "At least one failed backup session : Job B"
    assert perf == ["'Job A'=0;1;2", "'Job B'=2;1;2"]


def test_failed_wins_over_warning(now) :
    sessions = [makeSession("Job A", "Warning", endTime = now - HOUR),
                makeSession("Job B", "Failed", endTime = now - HOUR),
                makeSession("Job C", "Failed", endTime = now - HOUR)]
    (rc, summary, perf) = check_veeam_sessions.evaluateSessions(sessions, 24)
    assert rc == nagios_stuff.NAGIOS_RC_CRITICAL
    assert summary == "At least one failed backup session : Job B, Job C"


def test_warning_session(now) :
    sessions = [makeSession("Job A", "Warning", endTime = now - HOUR),
                makeSession("Job B", "Success", endTime = now - HOUR),
                makeSession("Job C", "None", endTime = None, state = "Working")]
    (rc, summary, perf) = check_veeam_sessions.evaluateSessions(sessions, 24)
    assert rc == nagios_stuff.NAGIOS_RC_WARNING
    assert summary == "At least one backup session in warning state : Job A"
    assert perf[2] == "'Job C'=3;1;2"


def test_unknown_result_is_not_ok(now) :
    sessions = [makeSession("Job A", "Success", endTime = now - HOUR),
                makeSession("Job B", "Something new", endTime = now - HOUR)]
    (rc, summary, perf) = check_veeam_sessions.evaluateSessions(sessions, 24)
    assert rc == nagios_stuff.NAGIOS_RC_UNKNOWN
    assert summary == "At least one backup session with unknown result : Job B"


def test_all_successful(now) :
    sessions = [makeSession("Job %s" % c, "Success", endTime = now - HOUR)
                for c in "ABC"]
    (rc, summary, perf) = check_veeam_sessions.evaluateSessions(sessions, 24)
    assert rc == nagios_stuff.NAGIOS_RC_OK
    assert summary == "All backup sessions are successful (3 sessions checked)"
    assert len(perf) == 3


def test_no_sessions() :
    (rc, summary, perf) = check_veeam_sessions.evaluateSessions([], 12)
    assert rc == nagios_stuff.NAGIOS_RC_UNKNOWN
    assert summary == "No backup session found in the last 12 hours"
    assert perf == []


#---
#--- main()

def _sessionsAnswer(sessions) :
    def answer(params) :
        if "createdAfterFilter" in params :
            return paged(sessions)
        return paged([])
    return answer


def _patchConnection(monkeypatch, conn, calls = None) :
    def fakeGetConnection(host, user, password, **keywords) :
        if calls is not None :
            calls.append((host, user, password, keywords))
        return conn
    monkeypatch.setattr(veeam_helpers, "GetConnection", fakeGetConnection)


def test_main_reports_critical(monkeypatch, capsys) :
    now = datetime.datetime.now(datetime.timezone.utc)
    recent = (now - HOUR).isoformat()
    conn = FakeConnection({veeam_helpers.SESSIONS_PATH : _sessionsAnswer([
        sessionJson("1", "Job A", "Success", recent, recent),
        sessionJson("2", "Job B", "Failed", recent, recent),
    ])})
    calls = []
    _patchConnection(monkeypatch, conn, calls)

    rc = check_veeam_sessions.main(CONNECTION_ARGS + ["-RPO", "24", "-k"])

    assert rc == 2
    assert capsys.readouterr().out == (
        "CRITICAL - At least one failed backup session : Job B"
        "|'Job A'=0;1;2 'Job B'=2;1;2\n")
    assert calls[0][:3] == ("veeam.example.org", "monitor", "secret")
    assert calls[0][3]["verifySSL"] is False
    assert conn.loggedOut


def test_main_long_option(monkeypatch, capsys) :
    conn = FakeConnection({veeam_helpers.SESSIONS_PATH : _sessionsAnswer([])})
    _patchConnection(monkeypatch, conn)
    rc = check_veeam_sessions.main(CONNECTION_ARGS + ["--rpo", "6"])
    assert rc == 3
    assert capsys.readouterr().out == (
        "UNKNOWN - No backup session found in the last 6 hours\n")


def test_main_requires_rpo(capsys) :
    rc = check_veeam_sessions.main(CONNECTION_ARGS)
    assert rc == 3
    assert capsys.readouterr().out.startswith("UNKNOWN - Invalid arguments")


def test_main_rejects_non_positive_rpo(monkeypatch, capsys) :
    _patchConnection(monkeypatch, None, calls = None)
    rc = check_veeam_sessions.main(CONNECTION_ARGS + ["-RPO", "0"])
    assert rc == 2
    assert capsys.readouterr().out.startswith("CRITICAL - Invalid configuration")


def test_main_missing_credentials(capsys) :
    rc = check_veeam_sessions.main(["-H", "veeam.example.org", "-RPO", "24"])
    assert rc == 3
    assert capsys.readouterr().out.startswith("UNKNOWN - Missing host")


def test_main_cannot_connect(monkeypatch, capsys) :
    def refuse(*args, **keywords) :
        raise requests.ConnectionError("connection refused")
    monkeypatch.setattr(veeam_helpers, "GetConnection", refuse)
    rc = check_veeam_sessions.main(CONNECTION_ARGS + ["-RPO", "24"])
    assert rc == 2
    assert capsys.readouterr().out == (
        "CRITICAL - Could not connect to veeam.example.org: connection refused\n")


def test_main_query_error(monkeypatch, capsys) :
    conn = FakeConnection({veeam_helpers.SESSIONS_PATH :
                           veeam_helpers.VeeamApiError("GET", "/api/v1/sessions", 500, "boom")})
    _patchConnection(monkeypatch, conn)
    rc = check_veeam_sessions.main(CONNECTION_ARGS + ["-RPO", "24"])
    assert rc == 2
    out = capsys.readouterr().out
    assert out.startswith("CRITICAL - Error while querying veeam.example.org: ")
    assert "HTTP 500" in out
    assert conn.loggedOut


def test_perf_label_doubles_single_quotes(now) :
    sessions = [makeSession("Bob's Job", "Success", endTime = now - HOUR)]
    assert check_veeam_sessions.buildPerfData(sessions) == ["'Bob''s Job'=0;1;2"]


def test_main_token_response_without_body(monkeypatch, capsys) :
    def post(self, url, **keywords) :
        return FakeResponse(200, None)
    monkeypatch.setattr(requests.Session, "post", post)
    rc = check_veeam_sessions.main(CONNECTION_ARGS + ["-RPO", "24"])
    assert rc == 2
    out = capsys.readouterr().out
    assert out.startswith("CRITICAL - Could not connect to veeam.example.org: ")
    assert "no access_token" in out


def test_main_unexpected_login_error(monkeypatch, capsys) :
    def broken(*args, **keywords) :
        raise TypeError("unexpected answer")
    monkeypatch.setattr(veeam_helpers, "GetConnection", broken)
    rc = check_veeam_sessions.main(CONNECTION_ARGS + ["-RPO", "24"])
    assert rc == 2
    assert capsys.readouterr().out == (
        "CRITICAL - Could not connect to veeam.example.org: unexpected answer\n")
