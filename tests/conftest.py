# -*- coding: utf-8 -*-

import datetime
import logging

import pytest

import check_veeam_replicas
import check_veeam_sessions
import veeam_helpers

NOW = datetime.datetime(2024, 5, 2, 8, 0, 0, tzinfo = datetime.timezone.utc)

GB = veeam_helpers.BYTES_PER_GB


class FakeResponse(object) :

    def __init__(self, status_code, payload = None, text = "") :
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) :
        return self._payload


class FakeConnection(object) :
    """
    Stands in for L{veeam_helpers.VeeamConnection}. Answers are looked up
    by path; a callable answer receives the request parameters.
    """

    def __init__(self, answers = None) :
        self.answers = dict(answers or {})
        self.requests = []
        self.loggedOut = False

    def _answer(self, method, path, params) :
        self.requests.append((method, path, params))
        answer = self.answers[path]
        if isinstance(answer, Exception) :
            raise answer
        if callable(answer) :
            return answer(params)
        return answer

    def get(self, path, params = None) :
        return self._answer("GET", path, dict(params or {}))

    def post(self, path, payload) :
        return self._answer("POST", path, payload)

    def logout(self) :
        self.loggedOut = True


def makeSession(jobName, result, endTime = None, creationTime = None,
                state = "Stopped", jobType = veeam_helpers.SESSION_TYPE_BACKUP,
                sessionId = None) :
    if creationTime is None and endTime is not None :
        creationTime = endTime - datetime.timedelta(hours = 1)
    return veeam_helpers.SessionRecord(
        jobName = jobName,
        jobType = jobType,
        sessionId = sessionId or "%s-%s" % (jobName, endTime),
        creationTime = creationTime,
        endTime = endTime,
        result = result,
        state = state,
        failures = 0,
        warnings = 0,
        willBeRetried = False,
    )


def sessionJson(sessionId, name, result, creationTime, endTime = None,
                state = "Stopped", sessionType = "BackupJob") :
    return {
        "id" : sessionId,
        "name" : name,
        "sessionType" : sessionType,
        "state" : state,
        "creationTime" : creationTime,
        "endTime" : endTime,
        "result" : {"result" : result, "message" : "", "isCanceled" : False},
    }


def replicaJobJson(name, hostName, datastoreName, jobType = "VSphereReplica") :
    return {
        "id" : "job-%s" % (name,),
        "name" : name,
        "type" : jobType,
        "destination" : {
            "host" : {"hostName" : hostName},
            "datastore" : {"name" : datastoreName},
        },
    }


def datastoreAnswer(capacities) :
    """
    @param capacities: datastoreName -> (capacityBytes, freeBytes)
    """
    def answer(payload) :
        name = payload["filter"]["value"]
        data = []
        if name in capacities :
            (capacity, free) = capacities[name]
            data.append({
                "inventoryObject" : {"type" : "Datastore", "name" : name},
                "capacity" : capacity,
                "freeSpace" : free,
            })
        return {"data" : data}
    return answer


def paged(items) :
    return {"data" : list(items), "pagination" : {"total" : len(items)}}


@pytest.fixture(autouse = True)
def resetSingletons(monkeypatch) :
    for name in ("VEEAM_HOST", "VEEAM_USER", "VEEAM_PASSWORD", "VEEAM_PORT") :
        monkeypatch.delenv(name, raising = False)
    monkeypatch.setattr(check_veeam_sessions.CLI, "_SINGLETON_INSTANCE", None)
    monkeypatch.setattr(check_veeam_replicas.CLI, "_SINGLETON_INSTANCE", None)


@pytest.fixture
def now() :
    return NOW


@pytest.fixture(autouse = True)
def restoreLogging() :
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
