# -*- coding: utf-8 -*-

#---
#--- Python
import argparse
import logging
import os
import sys

#---
#--- Plugin
import nagios_stuff
from veeam_helpers import DEFAULT_PORT, DEFAULT_TIMEOUT_SECONDS

#---
#--- Environment variables holding the default connection parameters
ENV_NAME_VEEAM_HOST = "VEEAM_HOST"
ENV_NAME_VEEAM_PORT = "VEEAM_PORT"
ENV_NAME_VEEAM_USER = "VEEAM_USER"
ENV_NAME_VEEAM_PASS = "VEEAM_PASSWORD"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class InvalidArgumentsError(Exception) :
    """
    Raised instead of exiting when the command line cannot be parsed.
    """


class ConfigurationError(Exception) :
    """
    Invalid threshold or filter settings. Reported as CRITICAL before any
    query is sent to the backup server.
    """


class _ArgumentParser(argparse.ArgumentParser) :

    def error(self, message) :
        raise InvalidArgumentsError(message)


#---
class BaseCLI(object) :

    _SINGLETON_INSTANCE = None #: Singleton Pattern

    DESCRIPTION = None

    def __init__(self) :
        self._options = None
        self.user = None
        self.host = None
        self.password = None
        self.port = None
        self.verify_ssl = None
        self.timeout = None
        self.verbose = False

        # take default values from environment variables
        self.defaultUsername = os.environ.get(ENV_NAME_VEEAM_USER, None)
        self.defaultPassword = os.environ.get(ENV_NAME_VEEAM_PASS, None)
        self.defaultHostname = os.environ.get(ENV_NAME_VEEAM_HOST, None)
        self.defaultPort = os.environ.get(ENV_NAME_VEEAM_PORT, DEFAULT_PORT)

        self.parser = self.createParser()
        self.addCheckOptions(self.parser)

    def GetUser(self) :
        return self.user

    def GetHostname(self) :
        return self.host

    def GetPassword(self) :
        return self.password

    def GetPort(self) :
        return self.port

    def GetTimeout(self) :
        return self.timeout

    def ShouldVerifySSL(self) :
        return self.verify_ssl

    def IsVerbose(self) :
        return self.verbose

    def GetOption(self, name) :
        return getattr(self._options, name)

    def MapNagiosReturnCode(self, nagiosReturnCode) :
        """
        @param nagiosReturnCode: Following values are specified
            - 0 = OK
            - 1 = WARNING
            - 2 = CRITICAL
            - 3 = UNKNOWN
        @type  nagiosReturnCode: int

        @return: the exit code, anything outside the range maps to UNKNOWN
        @rtype:  int
        """
        if nagiosReturnCode in (nagios_stuff.NAGIOS_RC_OK,
                                nagios_stuff.NAGIOS_RC_WARNING,
                                nagios_stuff.NAGIOS_RC_CRITICAL) :
            return nagiosReturnCode
        return nagios_stuff.NAGIOS_RC_UNKNOWN

    @classmethod
    def GetInstance(cls) :
        if cls._SINGLETON_INSTANCE is None :
            cls._SINGLETON_INSTANCE = cls()
        return cls._SINGLETON_INSTANCE

    def printUsage(self) :
        self.parser.print_help(sys.stderr)

    def createParser(self) :
        parser = _ArgumentParser(description = self.DESCRIPTION,
                                 allow_abbrev = False)
        parser.add_argument("-H", "--host",
                            dest = "host",
                            help = "Connect to the Veeam server HOST. If not specified content of environment variable '%s' will be used." % (ENV_NAME_VEEAM_HOST,),
                            metavar = "HOST",
                            default = self.defaultHostname,
        )

        parser.add_argument("-P", "--port",
                            dest = "port",
                            help = "Port of the REST API (default: %%(default)s). Environment variable '%s' overrides the default." % (ENV_NAME_VEEAM_PORT,),
                            type = int,
                            metavar = "PORT",
                            default = self.defaultPort,
        )

        parser.add_argument("-u", "--user",
                            dest = "user",
                            help = "Login as USER. If not specified content of environment variable '%s' will be used." % (ENV_NAME_VEEAM_USER,),
                            metavar = "USER",
                            default = self.defaultUsername,
        )

        parser.add_argument("-p", "--passwd",
                            dest = "password",
                            help = "Login with PASSWORD. If not specified content of environment variable '%s' will be used." % (ENV_NAME_VEEAM_PASS,),
                            metavar = "PASSWORD",
                            default = self.defaultPassword,
        )

        parser.add_argument("-k", "--insecure",
                            dest = "verify_ssl",
                            help = "do not verify the TLS certificate of the server",
                            action = "store_false",
                            default = True)

        parser.add_argument("-t", "--timeout",
                            dest = "timeout",
                            help = "timeout of a single API request in seconds (default: %(default)s)",
                            type = int,
                            metavar = "SECONDS",
                            default = DEFAULT_TIMEOUT_SECONDS)

        parser.add_argument("-v", "--verbose",
                            dest = "verbose",
                            help = "write debug messages to stderr",
                            action = "store_true",
                            default = False)
        return parser

    def addCheckOptions(self, parser) :
        """
        Hook for the options of a concrete check.
        """
        pass

    def evaluate(self, argv = None) :
        """
        @raise InvalidArgumentsError: on unparseable arguments
        """
        options = self.parser.parse_args(argv)

        self.user = options.user
        self.password = options.password
        self.host = options.host
        self.port = options.port
        self.verify_ssl = options.verify_ssl
        self.timeout = options.timeout
        self.verbose = options.verbose

        self._options = options


def SetupLogging(verbose) :
    """
    Log messages go to stderr, stdout is reserved for the status line.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(stream = sys.stderr, level = level,
                        format = LOG_FORMAT, force = True)


def Report(cli, rc, summary, perfTokens = None) :
    """
    Prints the status line.

    @return: final exit code
    @rtype:  int
    """
    print(nagios_stuff.FormatOutputLine(rc, summary, perfTokens))
    return cli.MapNagiosReturnCode(rc)


def HandleInvalidArguments(cli, error) :
    """
    @return: final exit code
    @rtype:  int
    """
    cli.printUsage()
    return Report(cli, nagios_stuff.NAGIOS_RC_UNKNOWN,
                  "Invalid arguments: %s" % (error,))


def HandleMissingArguments(cli) :
    """
    @return: final exit code
    @rtype:  int
    """
    cli.printUsage()
    return Report(cli, nagios_stuff.NAGIOS_RC_UNKNOWN,
                  "Missing host, user or password")


def HandleConfigurationError(cli, error) :
    """
    @return: final exit code
    @rtype:  int
    """
    return Report(cli, nagios_stuff.NAGIOS_RC_CRITICAL,
                  "Invalid configuration: %s" % (error,))


def HandleCannotConnectError(cli, error) :
    """
    @return: final exit code
    @rtype:  int
    """
    return Report(cli, nagios_stuff.NAGIOS_RC_CRITICAL,
                  "Could not connect to %s: %s" % (cli.GetHostname(), error))


def HandleQueryError(cli, error) :
    """
    @return: final exit code
    @rtype:  int
    """
    return Report(cli, nagios_stuff.NAGIOS_RC_CRITICAL,
                  "Error while querying %s: %s" % (cli.GetHostname(), error))
