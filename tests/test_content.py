# tests/test_content.py
"""分类树、笔记浏览（浏览量、浏览记录）、分页夹取与管理端 CRUD。"""
from conftest import auth, make_user, uniq
from hpa.core.models_user import UserRole


def _admin(db):
    return make_user(db, role=UserRole.admin)


def _category(client, admin, parent_id=None):
    body = {"name": "分类", "slug": uniq("cat"), "sort": 1}
    if parent_id:
        body["parent_id"] = parent_id
    r = client.post("/api/v1/admin/categories", headers=auth(admin), json=body)
    assert r.status_code == 200, r.text
    return r.json()["data"]


def _note(client, admin, category_id, **extra):
    body = {"category_id": category_id, "title": "笔记", "slug": uniq("note"), "content": "正文", **extra}
    r = client.post("/api/v1/admin/notes", headers=auth(admin), json=body)
    assert r.status_code == 200, r.text
    return r.json()["data"]


def test_category_tree(client, db):
    admin = _admin(db)
    root = _category(client, admin)
    child = _category(client, admin, parent_id=root["id"])

    r = client.get("/api/v1/hpa/categories")
    roots = {c["id"]: c for c in r.json()["data"]}
    assert root["id"] in roots
    assert child["id"] not in roots
    assert [c["id"] for c in roots[root["id"]]["children"]] == [child["id"]]


def test_view_count_and_history(client, db):
    admin = _admin(db)
    cat = _category(client, admin)
    note = _note(client, admin, cat["id"])
    reader = make_user(db)

    r = client.get(f"/api/v1/hpa/notes/{note['slug']}")
    assert r.json()["data"]["view_count"] == 1
    assert r.json()["data"]["content"] == "正文"

    r = client.get(f"/api/v1/hpa/notes/{note['slug']}", headers=auth(reader))
    assert r.json()["data"]["view_count"] == 2

    # 无效 token 按匿名处理
    r = client.get(f"/api/v1/hpa/notes/{note['slug']}", headers={"Authorization": "Bearer junk"})
    assert r.status_code == 200
    assert r.json()["data"]["view_count"] == 3

    r = client.get("/api/v1/hpa/history", headers=auth(reader))
    data = r.json()["data"]
    assert data["total"] == 1
    assert data["list"][0]["note"]["slug"] == note["slug"]


def test_private_note_is_hidden(client, db):
    admin = _admin(db)
    cat = _category(client, admin)
    note = _note(client, admin, cat["id"], is_public=False)

    r = client.get(f"/api/v1/hpa/notes/{note['slug']}")
    assert r.status_code == 404
    assert r.json()["code"] == 40401

    r = client.get("/api/v1/hpa/notes", params={"category_id": cat["id"]})
    assert r.json()["data"]["total"] == 0

    r = client.get("/api/v1/admin/notes", params={"category_id": cat["id"]}, headers=auth(admin))
    assert r.json()["data"]["total"] == 1


def test_note_list_paging_is_clamped(client, db):
    admin = _admin(db)
    cat = _category(client, admin)
    for i in range(3):
        _note(client, admin, cat["id"], sort=i)

    r = client.get("/api/v1/hpa/notes", params={"category_id": cat["id"], "page": 0, "page_size": 999})
    data = r.json()["data"]
    assert data["page"] == 1
    assert data["page_size"] == 20
    assert data["total"] == 3
    assert [n["sort"] for n in data["list"]] == [2, 1, 0]


def test_duplicate_slug_and_missing_rows(client, db):
    admin = _admin(db)
    cat = _category(client, admin)
    r = client.post("/api/v1/admin/categories", headers=auth(admin), json={"name": "x", "slug": cat["slug"]})
    assert r.status_code == 400
    assert r.json()["code"] == 40001

    r = client.put("/api/v1/admin/notes/999999", headers=auth(admin), json={"title": "t"})
    assert r.status_code == 404


def test_update_and_delete(client, db):
    admin = _admin(db)
    cat = _category(client, admin)
    note = _note(client, admin, cat["id"])

    r = client.put(f"/api/v1/admin/notes/{note['id']}", headers=auth(admin), json={"title": "改名"})
    assert r.json()["data"]["title"] == "改名"
    assert r.json()["data"]["slug"] == note["slug"]

    # 分类下还有笔记时不能删
    r = client.delete(f"/api/v1/admin/categories/{cat['id']}", headers=auth(admin))
    assert r.status_code == 400

    assert client.delete(f"/api/v1/admin/notes/{note['id']}", headers=auth(admin)).json()["code"] == 0
    assert client.delete(f"/api/v1/admin/categories/{cat['id']}", headers=auth(admin)).json()["code"] == 0
    assert client.get(f"/api/v1/hpa/notes/{note['slug']}").status_code == 404


def test_validation_error_envelope(client, db):
    admin = _admin(db)
    r = client.post("/api/v1/admin/categories", headers=auth(admin), json={"name": "x"})
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == 40001
    assert "slug" in body["message"]
    assert body["data"] is None


def test_unknown_route_uses_envelope(client):
    r = client.get("/api/v1/hpa/nothing-here")
    assert r.status_code == 404
    assert r.json()["code"] == 404


def test_category_cannot_move_under_its_descendant(client, db):
    admin = _admin(db)
    a = _category(client, admin)
    b = _category(client, admin, parent_id=a["id"])
    c = _category(client, admin, parent_id=b["id"])

    for descendant in (b, c):
        r = client.put(f"/api/v1/admin/categories/{a['id']}", headers=auth(admin),
                       json={"parent_id": descendant["id"]})
        assert r.status_code == 400
        assert r.json()["code"] == 40001

    r = client.get("/api/v1/hpa/categories")
    assert a["id"] in [cat["id"] for cat in r.json()["data"]]

    # 同一子树内的合法移动仍然允许
    r = client.put(f"/api/v1/admin/categories/{c['id']}", headers=auth(admin),
                   json={"parent_id": a["id"]})
    assert r.json()["data"]["parent_id"] == a["id"]


def test_category_update_null_fields(client, db):
    admin = _admin(db)
    root = _category(client, admin)
    child = _category(client, admin, parent_id=root["id"])

    r = client.put(f"/api/v1/admin/categories/{child['id']}", headers=auth(admin),
                   json={"name": None, "slug": None, "sort": None})
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert (data["name"], data["slug"], data["sort"]) == (child["name"], child["slug"], child["sort"])
    assert data["parent_id"] == root["id"]

    r = client.put(f"/api/v1/admin/categories/{child['id']}", headers=auth(admin),
                   json={"parent_id": None})
    assert r.json()["data"]["parent_id"] is None
    r = client.get("/api/v1/hpa/categories")
    assert child["id"] in [cat["id"] for cat in r.json()["data"]]


def test_duplicate_category_slug(client, db):
    admin = _admin(db)
    a = _category(client, admin)
    b = _category(client, admin)
    r = client.put(f"/api/v1/admin/categories/{b['id']}", headers=auth(admin), json={"slug": a["slug"]})
    assert r.json()["code"] == 40001
    assert r.json()["message"] == "分类 slug 已存在"
