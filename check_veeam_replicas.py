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
Nagios check for the free space on the datastores of Veeam replica jobs.

Usage::

    check_veeam_replicas.py -H veeam.example.org -u monitor -p SECRET \\
        -Warning 80 -Critical 90 -ExcludedTargets 'Test*,Scratch'
"""

#---
#--- Python
import fnmatch
import logging
import re
import sys

#---
#--- Plugin Stuff
import cli_helpers
import nagios_stuff
import veeam_helpers

log = logging.getLogger("check_veeam_replicas")

DEFAULT_WARNING_PERCENT = 80
DEFAULT_CRITICAL_PERCENT = 90

#: characters allowed in the list of excluded targets
EXCLUSION_RE = re.compile(r"^[\w\s\-.*(),]*$")


#---
class CLI(cli_helpers.BaseCLI) :

    _SINGLETON_INSTANCE = None #: Singleton Pattern

    DESCRIPTION = "Checks the used space on the datastores of Veeam replica jobs."

    def addCheckOptions(self, parser) :
        parser.add_argument("-Warning", "--warning",
                            dest = "warning",
                            help = "WARNING when a datastore is PERCENT used (default: %(default)s)",
                            type = int,
                            metavar = "PERCENT",
                            default = DEFAULT_WARNING_PERCENT)

        parser.add_argument("-Critical", "--critical",
                            dest = "critical",
                            help = "CRITICAL when a datastore is PERCENT used (default: %(default)s)",
                            type = int,
                            metavar = "PERCENT",
                            default = DEFAULT_CRITICAL_PERCENT)

        parser.add_argument("-ExcludedTargets", "--excluded-targets",
                            dest = "excluded",
                            help = "comma separated datastore names to skip, '*' matches any text",
                            metavar = "NAMES",
                            default = "")

    def GetWarning(self) :
        return self.GetOption("warning")

    def GetCritical(self) :
        return self.GetOption("critical")

    def GetExcludedTargets(self) :
        return self.GetOption("excluded")


def validateThresholds(warning, critical) :
    """
    @raise cli_helpers.ConfigurationError: unless 0 <= warning < critical <= 100
    """
    for (name, value) in (("warning", warning), ("critical", critical)) :
        if not 0 <= value <= 100 :
            raise cli_helpers.ConfigurationError(
                "%s threshold must be between 0 and 100, got %i" % (name, value))
    if critical <= warning :
        raise cli_helpers.ConfigurationError(
            "critical threshold (%i) must be greater than warning threshold (%i)"
            % (critical, warning))


def parseExclusions(text) :
    """
    Doctests::

        >>> parseExclusions(" Datastore*, Scratch ,,")
        ['Datastore*', 'Scratch']

    @raise cli_helpers.ConfigurationError: on characters other than letters,
        digits, space and C{_ - . * ( ) ,}
    @rtype: [str]
    """
    if not text :
        return []
    if not EXCLUSION_RE.match(text) :
        raise cli_helpers.ConfigurationError(
            "invalid characters in excluded targets '%s'" % (text,))
    return [p.strip() for p in text.split(",") if p.strip()]


def isExcluded(name, patterns) :
    """
    Case insensitive match of the whole name, '*' matches any text.

    Doctests::

        >>> isExcluded("DATASTORE01", ["datastore*"])
        True
        >>> isExcluded("Local Datastore", ["datastore*"])
        False
    """
    lowerName = name.lower()
    for pattern in patterns :
        if fnmatch.fnmatchcase(lowerName, pattern.lower()) :
            return True
    return False


def classifyUsage(usedPercent, warning, critical) :
    """
    @rtype: int
    """
    if usedPercent >= critical :
        return nagios_stuff.NAGIOS_RC_CRITICAL
    if usedPercent >= warning :
        return nagios_stuff.NAGIOS_RC_WARNING
    return nagios_stuff.NAGIOS_RC_OK


def buildTarget(name, capacityBytes, freeBytes, warning, critical) :
    """
    @raise ValueError: if the datastore reports no capacity

    @rtype: L{veeam_helpers.ReplicaTarget}
    """
    if capacityBytes <= 0 :
        raise ValueError("datastore '%s' reports a capacity of %s bytes"
                         % (name, capacityBytes))
    usedBytes = capacityBytes - freeBytes
    usedPercent = int(round(usedBytes * 100.0 / capacityBytes))
    freePercent = int(round(freeBytes * 100.0 / capacityBytes))
    return veeam_helpers.ReplicaTarget(
        name = name,
        usedGB = round(usedBytes / float(veeam_helpers.BYTES_PER_GB), 2),
        freeGB = round(freeBytes / float(veeam_helpers.BYTES_PER_GB), 2),
        totalGB = round(capacityBytes / float(veeam_helpers.BYTES_PER_GB), 2),
        usedPercent = usedPercent,
        freePercent = freePercent,
        status = classifyUsage(usedPercent, warning, critical),
    )


def uniqueDestinations(destinations) :
    """
    Doctests::

        >>> uniqueDestinations([("esx1", "DS1"), ("esx2", "DS1"), ("esx2", "DS2")])
        [('esx1', 'DS1'), ('esx2', 'DS2')]

    @param destinations: (hostName, datastoreName) pairs
    @return: first pair of every datastore name
    """
    seen = set()
    unique = []
    for (hostName, datastoreName) in destinations :
        if datastoreName in seen :
            continue
        seen.add(datastoreName)
        unique.append((hostName, datastoreName))
    return unique


def buildPerfData(target, warning, critical) :
    """
    @rtype: [str]
    """
    label = target.name.replace(" ", "_")
    warningGB = round(warning / 100.0 * target.totalGB, 2)
    criticalGB = round(critical / 100.0 * target.totalGB, 2)
    return [
        nagios_stuff.FormatPerfToken(label,
                                     "%sGB" % (nagios_stuff.FormatNumber(target.usedGB),),
                                     nagios_stuff.FormatNumber(warningGB),
                                     nagios_stuff.FormatNumber(criticalGB),
                                     0,
                                     nagios_stuff.FormatNumber(target.totalGB)),
        nagios_stuff.FormatPerfToken("%s_prct_used" % (label,),
                                     "%i%%" % (target.usedPercent,),
                                     warning,
                                     critical),
    ]


def describeTarget(target) :
    return "%s Used: %i%% (%sGB/%sGB)" % (target.name,
                                          target.usedPercent,
                                          nagios_stuff.FormatNumber(target.freeGB),
                                          nagios_stuff.FormatNumber(target.totalGB))


def evaluateTargets(targets, warning, critical) :
    """
    @return: (nagiosReturnCode, summary, perfTokens)
    @rtype:  (int, str, [str])
    """
    if not targets :
        return (nagios_stuff.NAGIOS_RC_UNKNOWN, "No replica targets found", [])

    perfTokens = []
    for target in targets :
        perfTokens.extend(buildPerfData(target, warning, critical))

    for (rc, stateText) in ((nagios_stuff.NAGIOS_RC_CRITICAL, "critical"),
                            (nagios_stuff.NAGIOS_RC_WARNING, "warning")) :
        matching = [t for t in targets if t.status == rc]
        if matching :
            matching.sort(key = lambda t : t.freePercent)
            summary = "Replica target(s) in %s state : %s" % (
                stateText, ", ".join(describeTarget(t) for t in matching))
            return (rc, summary, perfTokens)

    return (nagios_stuff.NAGIOS_RC_OK,
            "All replica targets are below thresholds (%i targets checked)" % (len(targets),),
            perfTokens)


def collectTargets(conn, warning, critical, exclusions) :
    """
    @rtype: [L{veeam_helpers.ReplicaTarget}]
    """
    destinations = [veeam_helpers.replicaDestination(job)
                    for job in veeam_helpers.iterReplicaJobs(conn)]
    targets = []
    for (hostName, datastoreName) in uniqueDestinations(destinations) :
        if isExcluded(datastoreName, exclusions) :
            log.debug("datastore %s excluded", datastoreName)
            continue
        (capacityBytes, freeBytes) = veeam_helpers.getDatastoreCapacity(conn, hostName, datastoreName)
        targets.append(buildTarget(datastoreName, capacityBytes, freeBytes,
                                   warning, critical))
    return targets


def HandleStorageCheck(cli, conn, exclusions) :
    """
    @return: final exit code
    @rtype:  int
    """
    warning = cli.GetWarning()
    critical = cli.GetCritical()
    targets = collectTargets(conn, warning, critical, exclusions)
    log.debug("%i replica targets checked", len(targets))
    (rc, summary, perfTokens) = evaluateTargets(targets, warning, critical)
    return cli_helpers.Report(cli, rc, summary, perfTokens)


def main(argv = None) :

    cli = CLI.GetInstance()
    try :
        cli.evaluate(argv)
    except cli_helpers.InvalidArgumentsError as E :
        return cli_helpers.HandleInvalidArguments(cli, E)

    cli_helpers.SetupLogging(cli.IsVerbose())

    try :
        validateThresholds(cli.GetWarning(), cli.GetCritical())
        exclusions = parseExclusions(cli.GetExcludedTargets())
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
        return HandleStorageCheck(cli, conn, exclusions)
    except Exception as E :
        log.debug("storage check failed", exc_info = True)
        return cli_helpers.HandleQueryError(cli, E)
    finally :
        conn.logout()


if __name__ == "__main__" :
    retCode = main()
    sys.exit(retCode)
