# -*- coding: utf-8 -*-

#---
#--- Python
import collections
import datetime
import logging
import re

#---
#--- Veeam Backup & Replication REST API
import requests
import urllib3

log = logging.getLogger(__name__)

#---
#--- REST API Constants
API_VERSION = "1.1-rev2"
DEFAULT_PORT = 9419
DEFAULT_TIMEOUT_SECONDS = 30

TOKEN_PATH = "/api/oauth2/token"
LOGOUT_PATH = "/api/oauth2/logout"
SESSIONS_PATH = "/api/v1/sessions"
JOBS_PATH = "/api/v1/jobs"
INVENTORY_PATH = "/api/v1/inventory/%(hostName)s"

#: number of objects requested per page
PAGE_SIZE = 200

SESSION_TYPE_BACKUP = "BackupJob"
SESSION_STATE_WORKING = "Working"
JOB_TYPE_REPLICA = "Replica"
INVENTORY_TYPE_DATASTORE = "Datastore"

BYTES_PER_GB = 1024 ** 3

#---
#--- Records
SessionRecord = collections.namedtuple("SessionRecord", [
    "jobName",
    "jobType",
    "sessionId",
    "creationTime",
    "endTime",       # None while the session is running
    "result",        # "Success", "Warning", "Failed", or what the API reports
    "state",
    "failures",
    "warnings",
    "willBeRetried",
])

ReplicaTarget = collections.namedtuple("ReplicaTarget", [
    "name",
    "usedGB",
    "freeGB",
    "totalGB",
    "usedPercent",
    "freePercent",
    "status",
])


class VeeamApiError(Exception) :
    """
    The REST API answered with a non 2xx status code.
    """

    def __init__(self, method, path, statusCode, text) :
        Exception.__init__(self, "%s %s returned HTTP %s: %s"
                           % (method, path, statusCode, text))
        self.method = method
        self.path = path
        self.statusCode = statusCode
        self.text = text


#---
class VeeamConnection(object) :
    """
    Handle on one Veeam Backup & Replication server.
    """

    def __init__(self, host, port = DEFAULT_PORT, verifySSL = True,
                 timeout = DEFAULT_TIMEOUT_SECONDS, session = None) :
        self.host = host
        self.port = int(port)
        self.timeout = timeout
        self.token = None
        if session is None :
            session = requests.Session()
        self.session = session
        self.session.verify = verifySSL
        self.session.headers.update({
            "Accept" : "application/json",
            "x-api-version" : API_VERSION,
        })
        if not verifySSL :
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def GetBaseUrl(self) :
        return "https://%s:%i" % (self.host, self.port)

    def IsLoggedIn(self) :
        return self.token is not None

    def IsSameTarget(self, host, port) :
        return (self.host.lower() == host.lower()
                and self.port == int(port))

    def _checkResponse(self, response, method, path) :
        if not 200 <= response.status_code < 300 :
            raise VeeamApiError(method, path, response.status_code,
                                response.text)

    def login(self, user, password) :
        """
        OAuth2 password grant.

        @raise VeeamApiError: when the server refuses the credentials or
            answers without an access token
        @raise requests.RequestException: when the server is unreachable
        """
        log.debug("login as %s on %s", user, self.GetBaseUrl())
        response = self.session.post(self.GetBaseUrl() + TOKEN_PATH,
                                     data = {
                                         "grant_type" : "password",
                                         "username" : user,
                                         "password" : password,
                                     },
                                     timeout = self.timeout)
        self._checkResponse(response, "POST", TOKEN_PATH)
        body = response.json()
        if not isinstance(body, dict) or not body.get("access_token") :
            raise VeeamApiError("POST", TOKEN_PATH, response.status_code,
                                "no access_token in response: %r" % (body,))
        self.token = body["access_token"]
        self.session.headers["Authorization"] = "Bearer %s" % (self.token,)

    def logout(self) :
        if self.token is None :
            return
        try :
            response = self.session.post(self.GetBaseUrl() + LOGOUT_PATH,
                                         timeout = self.timeout)
            self._checkResponse(response, "POST", LOGOUT_PATH)
        except (requests.RequestException, VeeamApiError) as E :
            log.warning("logout from %s failed: %s", self.host, E)
        finally :
            self.token = None
            self.session.headers.pop("Authorization", None)
            self.session.close()

    def get(self, path, params = None) :
        log.debug("GET %s %r", path, params)
        response = self.session.get(self.GetBaseUrl() + path,
                                    params = params,
                                    timeout = self.timeout)
        self._checkResponse(response, "GET", path)
        return response.json()

    def post(self, path, payload) :
        log.debug("POST %s %r", path, payload)
        response = self.session.post(self.GetBaseUrl() + path,
                                     json = payload,
                                     timeout = self.timeout)
        self._checkResponse(response, "POST", path)
        return response.json()


def GetConnection(host, user, password, port = DEFAULT_PORT, verifySSL = True,
                  timeout = DEFAULT_TIMEOUT_SECONDS, existing = None) :
    """
    Returns C{existing} when it is logged in on the same host and port,
    otherwise a new logged in connection.

    @type existing: L{VeeamConnection} | None
    @rtype: L{VeeamConnection}
    """
    if existing is not None :
        if existing.IsLoggedIn() and existing.IsSameTarget(host, port) :
            log.debug("reusing connection to %s", existing.GetBaseUrl())
            return existing
        existing.logout()

    conn = VeeamConnection(host, port = port, verifySSL = verifySSL,
                           timeout = timeout)
    conn.login(user, password)
    return conn


#---
#--- Conversion

_FRACTION_RE = re.compile(r"\.(\d+)")


def parseTimestamp(text) :
    """
    Parses the ISO 8601 timestamps of the REST API. Naive values are taken
    as UTC.

    Doctests::

        >>> parseTimestamp("2024-05-01T22:00:12.1234567Z")
        datetime.datetime(2024, 5, 1, 22, 0, 12, 123456, tzinfo=datetime.timezone.utc)
        >>> parseTimestamp(None) is None
        True

    @rtype: datetime.datetime | None
    """
    if not text :
        return None
    text = text.strip()
    if text.endswith("Z") :
        text = text[:-1] + "+00:00"
    # fromisoformat before Python 3.11 only takes 3 or 6 digit fractions
    text = _FRACTION_RE.sub(lambda m : "." + (m.group(1) + "000000")[:6], text)
    value = datetime.datetime.fromisoformat(text)
    if value.tzinfo is None :
        value = value.replace(tzinfo = datetime.timezone.utc)
    return value


def parseSession(data) :
    """
    @param data: one session object of C{GET /api/v1/sessions}
    @type  data: dict

    @rtype: L{SessionRecord}
    """
    result = data.get("result")
    if isinstance(result, dict) :
        result = result.get("result")
    return SessionRecord(
        jobName = data.get("name"),
        jobType = data.get("sessionType"),
        sessionId = data.get("id"),
        creationTime = parseTimestamp(data.get("creationTime")),
        endTime = parseTimestamp(data.get("endTime")),
        result = result,
        state = data.get("state"),
        failures = int(data.get("failures") or 0),
        warnings = int(data.get("warnings") or 0),
        willBeRetried = bool(data.get("willBeRetried", False)),
    )


def replicaDestination(job) :
    """
    @param job: one job object of C{GET /api/v1/jobs}
    @type  job: dict

    @return: (hostName, datastoreName) of the replica destination
    @rtype:  (str, str)

    @raise ValueError: when the job carries no destination datastore
    """
    destination = job.get("destination") or {}
    host = destination.get("host") or {}
    datastore = destination.get("datastore") or {}
    hostName = host.get("hostName") or host.get("name")
    datastoreName = datastore.get("name")
    if not hostName or not datastoreName :
        raise ValueError("replica job '%s' has no destination datastore"
                         % (job.get("name"),))
    return (hostName, datastoreName)


#---
#--- Queries

def iterPagedData(conn, path, params = None) :
    """
    Follows the skip/limit pagination of the REST API.

    @return: generator[dict]
    """
    params = dict(params or {})
    skip = 0
    while True :
        params.update(skip = skip, limit = PAGE_SIZE)
        page = conn.get(path, params)
        data = page.get("data") or []
        for item in data :
            yield item
        skip += len(data)
        total = (page.get("pagination") or {}).get("total")
        log.debug("%s: %i of %s objects read", path, skip, total)
        if not data or total is None or skip >= total :
            break


def iterBackupSessions(conn, since) :
    """
    Sessions of backup jobs which were created or ended after C{since},
    plus all sessions still running. Each session is yielded once.

    @type since: datetime.datetime

    @return: generator[L{SessionRecord}]
    """
    sinceText = since.isoformat()
    queries = [
        {"createdAfterFilter" : sinceText},
        {"endedAfterFilter" : sinceText},
        {"stateFilter" : SESSION_STATE_WORKING},
    ]
    seen = set()
    for query in queries :
        query["typeFilter"] = SESSION_TYPE_BACKUP
        for data in iterPagedData(conn, SESSIONS_PATH, query) :
            if data.get("sessionType") != SESSION_TYPE_BACKUP :
                continue
            if data.get("id") in seen :
                continue
            seen.add(data.get("id"))
            yield parseSession(data)


def iterReplicaJobs(conn) :
    """
    @return: generator[dict]
    """
    for job in iterPagedData(conn, JOBS_PATH) :
        if JOB_TYPE_REPLICA in (job.get("type") or "") :
            yield job


def getDatastoreCapacity(conn, hostName, datastoreName) :
    """
    Looks the datastore up in the inventory of the replica host.

    @return: (capacityBytes, freeBytes)
    @rtype:  (int, int)

    @raise LookupError: when the host does not know the datastore
    """
    payload = {
        "filter" : {
            "type" : "PredicateExpression",
            "property" : "Name",
            "operation" : "Equals",
            "value" : datastoreName,
        },
    }
    path = INVENTORY_PATH % {"hostName" : hostName}
    response = conn.post(path, payload)
    for item in response.get("data") or [] :
        inventoryObject = item.get("inventoryObject") or item
        if inventoryObject.get("type") != INVENTORY_TYPE_DATASTORE :
            continue
        if inventoryObject.get("name") != datastoreName :
            continue
        return (int(item["capacity"]), int(item["freeSpace"]))
    raise LookupError("datastore '%s' not found on '%s'"
                      % (datastoreName, hostName))
