#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# vim: set fileencoding=utf-8 :
# vi:si:et:sw=4:sts=4:ts=4
# -*- Mode: Python -*-
#
# Copyright (C) 2026 check_veeam contributors

# This file may be distributed and/or modified under the terms of
# the GNU General Public License version 2 as published by
# the Free Software Foundation.
# This file is distributed without any warranty; without even the implied
# warranty of merchantability or fitness for a particular purpose.
# See "LICENSE.GPL" in the source distribution for more information.

"""
Nagios check for the latest backup session of every Veeam backup job.

Usage::

    check_veeam_sessions.py -H veeam.example.org -u 'DOMAIN\\monitor' -p SECRET -RPO 24
"""

#---
#--- Python
import datetime
import logging
import sys

#---
#--- Plugin Stuff
import cli_helpers
import nagios_stuff
import veeam_helpers

log = logging.getLogger("check_veeam_sessions")

#---
#--- Performance data thresholds (severity of the latest session)
PERF_WARNING = nagios_stuff.NAGIOS_RC_WARNING
PERF_CRITICAL = nagios_stuff.NAGIOS_RC_CRITICAL

#: Session result -> severity. Results not listed here are UNKNOWN.
RESULT_SEVERITIES = (
    ("Success", nagios_stuff.NAGIOS_RC_OK),
    ("Warning", nagios_stuff.NAGIOS_RC_WARNING),
    ("Failed", nagios_stuff.NAGIOS_RC_CRITICAL),
)

_OLDEST = datetime.datetime.min.replace(tzinfo = datetime.timezone.utc)


#---
class CLI(cli_helpers.BaseCLI) :

    _SINGLETON_INSTANCE = None #: Singleton Pattern

    DESCRIPTION = "Checks the latest session of every Veeam backup job."

    def addCheckOptions(self, parser) :
        parser.add_argument("-RPO", "--rpo",
                            dest = "rpo",
                            help = "only sessions of the last HOURS hours are checked",
                            type = int,
                            metavar = "HOURS",
                            required = True)

    def GetRPO(self) :
        return self.GetOption("rpo")


def validateRPO(rpoHours) :
    """
    @raise cli_helpers.ConfigurationError: unless rpoHours is positive
    """
    if rpoHours <= 0 :
        raise cli_helpers.ConfigurationError(
            "RPO must be a positive number of hours, got %i" % (rpoHours,))


def sessionSeverity(result) :
    """
    Doctests::

        >>> sessionSeverity("Failed")
        2
        >>> sessionSeverity("None")
        3

    @rtype: int
    """
    for (name, severity) in RESULT_SEVERITIES :
        if name == result :
            return severity
    return nagios_stuff.NAGIOS_RC_UNKNOWN


def _endTimeKey(session) :
    if session.endTime is None :
        return _OLDEST
    return session.endTime


def selectRecentSessions(sessions, rpoHours, now) :
    """
    Keeps backup sessions which ended or were created within the last
    C{rpoHours} hours, and those still running.

    @type now: datetime.datetime (timezone aware)
    @rtype: [L{veeam_helpers.SessionRecord}]
    """
    cutoff = now - datetime.timedelta(hours = rpoHours)
    selected = []
    for session in sessions :
        if session.jobType != veeam_helpers.SESSION_TYPE_BACKUP :
            continue
        if session.state == veeam_helpers.SESSION_STATE_WORKING :
            selected.append(session)
        elif session.endTime is not None and session.endTime >= cutoff :
            selected.append(session)
        elif session.creationTime is not None and session.creationTime >= cutoff :
            selected.append(session)
    return selected


def latestSessionPerJob(sessions) :
    """
    One session per job name, the one which ended last. Running sessions
    count as oldest. Sorted by job name.

    @rtype: [L{veeam_helpers.SessionRecord}]
    """
    latest = {}
    for session in sessions :
        current = latest.get(session.jobName)
        if current is None or _endTimeKey(session) > _endTimeKey(current) :
            latest[session.jobName] = session
    return [latest[jobName] for jobName in sorted(latest)]


def buildPerfData(sessions) :
    """
    Doctests::

        >>> from veeam_helpers import SessionRecord
        >>> s = SessionRecord("Job A", "BackupJob", "1", None, None,
        ...                   "Success", "Stopped", 0, 0, False)
        >>> buildPerfData([s])
        ["'Job A'=0;1;2"]
    """
    tokens = []
    for session in sessions :
        label = "'%s'" % (session.jobName.replace("'", "''"),)
        tokens.append(nagios_stuff.FormatPerfToken(label,
                                                   sessionSeverity(session.result),
                                                   PERF_WARNING,
                                                   PERF_CRITICAL))
    return tokens


def evaluateSessions(sessions, rpoHours) :
    """
    @param sessions: the latest session of each job, see L{latestSessionPerJob}

    @return: (nagiosReturnCode, summary, perfTokens)
    @rtype:  (int, str, [str])
    """
    if not sessions :
        return (nagios_stuff.NAGIOS_RC_UNKNOWN,
                "No backup session found in the last %i hours" % (rpoHours,),
                [])

    perfTokens = buildPerfData(sessions)
    byseverity = {}
    for session in sessions :
        severity = sessionSeverity(session.result)
        byseverity.setdefault(severity, []).append(session.jobName)

    failed = byseverity.get(nagios_stuff.NAGIOS_RC_CRITICAL)
    warning = byseverity.get(nagios_stuff.NAGIOS_RC_WARNING)
    unknown = byseverity.get(nagios_stuff.NAGIOS_RC_UNKNOWN)

    if failed :
        return (nagios_stuff.NAGIOS_RC_CRITICAL,
                "At least one failed backup session : %s" % (", ".join(failed),),
                perfTokens)
    if warning :
        return (nagios_stuff.NAGIOS_RC_WARNING,
                "At least one backup session in warning state : %s" % (", ".join(warning),),
                perfTokens)
    if unknown :
        return (nagios_stuff.NAGIOS_RC_UNKNOWN,
                "At least one backup session with unknown result : %s" % (", ".join(unknown),),
                perfTokens)
    return (nagios_stuff.NAGIOS_RC_OK,
            "All backup sessions are successful (%i sessions checked)" % (len(sessions),),
            perfTokens)


def HandleSessionCheck(cli, conn, now = None) :
    """
    @return: final exit code
    @rtype:  int
    """
    if now is None :
        now = datetime.datetime.now(datetime.timezone.utc)
    rpoHours = cli.GetRPO()
    since = now - datetime.timedelta(hours = rpoHours)

    sessions = list(veeam_helpers.iterBackupSessions(conn, since))
    log.debug("%i backup sessions read", len(sessions))
    recent = selectRecentSessions(sessions, rpoHours, now)
    latest = latestSessionPerJob(recent)
    log.debug("%i sessions within %i hours, %i jobs", len(recent), rpoHours, len(latest))

    (rc, summary, perfTokens) = evaluateSessions(latest, rpoHours)
    return cli_helpers.Report(cli, rc, summary, perfTokens)


def main(argv = None) :

    cli = CLI.GetInstance()
    try :
        cli.evaluate(argv)
    except cli_helpers.InvalidArgumentsError as E :
        return cli_helpers.HandleInvalidArguments(cli, E)

    cli_helpers.SetupLogging(cli.IsVerbose())

    try :
        validateRPO(cli.GetRPO())
    except cli_helpers.ConfigurationError as E :
        return cli_helpers.HandleConfigurationError(cli, E)

    user = cli.GetUser()
    host = cli.GetHostname()
    password = cli.GetPassword()

    if None in [user, password, host] :
        return cli_helpers.HandleMissingArguments(cli)

    try :
        conn = veeam_helpers.GetConnection(host, user, password,
                                           port = cli.GetPort(),
                                           verifySSL = cli.ShouldVerifySSL(),
                                           timeout = cli.GetTimeout())
    except Exception as E :
        log.debug("login failed", exc_info = True)
        return cli_helpers.HandleCannotConnectError(cli, E)

    try :
        return HandleSessionCheck(cli, conn)
    except Exception as E :
        log.debug("session check failed", exc_info = True)
        return cli_helpers.HandleQueryError(cli, E)
    finally :
        conn.logout()


if __name__ == "__main__" :
    retCode = main()
    sys.exit(retCode)
