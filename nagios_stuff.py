# -*- coding: utf-8 -*-

#---
#--- Nagios Constants (https://nagios-plugins.org/doc/guidelines.html)

#: The plugin was able to check the service and it appeared to be
#: functioning properly
NAGIOS_RC_OK = 0

#: The plugin was able to check the service, but it appeared to be above
#: some "warning" threshold or did not appear to be working properly
NAGIOS_RC_WARNING = 1

#: The plugin detected that either the service was not running or it was
#: above some "critical" threshold
NAGIOS_RC_CRITICAL = 2

#: Invalid command line arguments were supplied to the plugin or low-level
#: failures internal to the plugin (such as unable to fork, or open a tcp
#: socket) that prevent it from performing the specified operation.
#: Higher-level errors (such as name resolution errors, socket timeouts, etc)
#: are outside of the control of plugins and should generally NOT be reported
#: as UNKNOWN states.
NAGIOS_RC_UNKNOWN = 3

#: Status names as printed in front of the plugin output
NAGIOS_STATE_NAMES = (
    (NAGIOS_RC_OK, "OK"),
    (NAGIOS_RC_WARNING, "WARNING"),
    (NAGIOS_RC_CRITICAL, "CRITICAL"),
    (NAGIOS_RC_UNKNOWN, "UNKNOWN"),
)


def GetStateName(rc) :
    """
    @param rc: one of the NAGIOS_RC_* constants
    @type  rc: int

    @return: "OK", "WARNING", "CRITICAL" or "UNKNOWN" (also for values
        outside the Nagios range)
    @rtype: str
    """
    for (code, name) in NAGIOS_STATE_NAMES :
        if code == rc :
            return name
    return "UNKNOWN"


def FormatNumber(value) :
    """
    Two decimal places at most, trailing zeros removed.

    Doctests::

        >>> FormatNumber(850.0)
        '850'
        >>> FormatNumber(12.5)
        '12.5'
    """
    text = "%.2f" % (value,)
    text = text.rstrip('0').rstrip('.')
    if text in ("", "-0") :
        return "0"
    return text


def FormatPerfToken(label, value, warning = "", critical = "",
                    minimum = "", maximum = "") :
    """
    Builds one performance data token C{label=value;warn;crit;min;max}.
    Trailing empty fields are dropped.

    Doctests::

        >>> FormatPerfToken("DS1", "850GB", 800, 900, 0, 1000)
        'DS1=850GB;800;900;0;1000'
        >>> FormatPerfToken("'Job A'", 0, 1, 2)
        "'Job A'=0;1;2"
    """
    fields = [value, warning, critical, minimum, maximum]
    fields = ["%s" % (f,) for f in fields]
    while len(fields) > 1 and fields[-1] == "" :
        fields.pop()
    return "%s=%s" % (label, ";".join(fields))


def FormatOutputLine(rc, summary, perfTokens = None) :
    """
    @return: C{"<LEVEL> - <summary>|<perf-data>"}
    @rtype:  str
    """
    line = "%s - %s" % (GetStateName(rc), summary)
    if perfTokens :
        line = "%s|%s" % (line, " ".join(perfTokens))
    return line


if __name__ == "__main__" :
    import doctest
    doctest.testmod()
