"""测试辅助：远端 API 假实现、可控时钟、requests.Response 构造"""

import json

import requests

from chromagui.exceptions import ChromaAPIError


class FakeChromaClient:
    """替代远端 Chroma API 的内存实现，记录每次调用"""

    def __init__(self):
        self.calls = []
        self.collections = {}
        self.fail_on = set()
        self.fail_ids = set()

    def _record(self, name, *args):
        self.calls.append((name, args))
        if name in self.fail_on:
            raise ChromaAPIError(f"{name} failed", status_code=500)

    async def health(self):
        self._record("health")
        return {"status": "ok"}

    async def list_collections(self):
        self._record("list_collections")
        return {"collections": list(self.collections)}

    async def create_collection(self, name):
        self._record("create_collection", name)
        self.collections.setdefault(name, {"ids": [], "documents": [], "metadatas": [], "embeddings": []})
        return {"name": name}

    async def delete_collection(self, name):
        self._record("delete_collection", name)
        self.collections.pop(name, None)
        return {"deleted": name}

    async def list_documents(self, collection_name, **options):
        self._record("list_documents", collection_name, options)
        return self.collections.get(collection_name, {"ids": [], "documents": [], "metadatas": []})

    async def add_or_update_document(self, collection_name, document, id_field, metadata=None, additional_params=None):
        self._record("add_or_update_document", collection_name, document, id_field, metadata, additional_params)
        return {"id": document.get(id_field)}

    async def query(self, collection_name, query_text, n_results=10, where=None):
        self._record("query", collection_name, query_text, n_results, where)
        return {"ids": [["a"]], "distances": [[0.1]]}

    async def delete_document(self, collection_name, document_id, additional_params=None):
        self._record("delete_document", collection_name, document_id, additional_params)
        return {"deleted": document_id}

    async def rename_collection(self, old_name, new_name):
        self._record("rename_collection", old_name, new_name)
        return {"old_name": old_name, "new_name": new_name}

    async def get_collection_stats(self, collection_name):
        self._record("get_collection_stats", collection_name)
        data = self.collections[collection_name]
        return {"name": collection_name, "count": len(data["documents"]), "documents": data["documents"]}

    async def batch_add_documents(self, collection_name, documents, id_field):
        self._record("batch_add_documents", collection_name, documents, id_field)
        results, errors = [], []
        for doc in documents:
            if doc.get(id_field) in self.fail_ids:
                errors.append({"document": doc, "error": "rejected"})
            else:
                results.append({"id": doc.get(id_field)})
        return {"successful": len(results), "failed": len(errors), "results": results, "errors": errors}

    def called(self, name):
        return [args for call, args in self.calls if call == name]


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_response(status_code=200, json_body=None, text=None, headers=None, url="http://chroma.test/x"):
    """构造 requests.Response"""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response.reason = {200: "OK", 404: "Not Found", 500: "Internal Server Error"}.get(status_code, "Error")
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["content-type"] = "application/json"
    else:
        response._content = (text or "").encode("utf-8")
    response._content_consumed = True
    response.encoding = "utf-8"
    for key, value in (headers or {}).items():
        response.headers[key] = value
    return response
