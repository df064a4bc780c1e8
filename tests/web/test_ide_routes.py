import io


class TestResources:
    def test_index(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.get_json()
        assert data["app"] == "Digital Twin Interactions IDE"
        assert "tank.svg" in data["svgFiles"]
        assert "tank.js" in data["scriptFiles"]

    def test_list_resources(self, client):
        data = client.get("/resources").get_json()
        assert set(data) == {"svg", "script"}
        assert "pump.svg" in data["svg"]

    def test_get_resource(self, client):
        response = client.get("/resource/svg/tank.svg")
        assert response.status_code == 200
        assert response.mimetype == "image/svg+xml"
        assert b'id="tank-level"' in response.data

    def test_get_missing_resource(self, client):
        response = client.get("/resource/svg/missing.svg")
        assert response.status_code == 404
        assert response.get_json() == {"success": False, "error": "File not found", "resource": "missing.svg"}

    def test_invalid_resource_type(self, client):
        response = client.get("/resource/images/a.png")
        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid resource type"

    def test_save_and_read_back(self, client):
        response = client.post("/save/script/alarm.js", json={"content": "function alarm() {}"})
        assert response.status_code == 200
        assert response.get_json() == {"success": True, "file": "alarm.js"}
        assert client.get("/resource/script/alarm.js").data == b"function alarm() {}"

    def test_save_raw_body(self, client):
        client.post("/save/script/raw.js", data="// raw", content_type="text/plain")
        assert client.get("/resource/script/raw.js").data == b"// raw"

    def test_save_rejects_unsafe_name(self, client):
        response = client.post("/save/svg/bad name.svg", json={"content": "<svg/>"})
        assert response.status_code == 400

    def test_save_rejects_non_text_content(self, client):
        response = client.post("/save/script/a.js", json={"content": 42})
        assert response.status_code == 400

    def test_examples(self, client):
        names = client.get("/examples").get_json()["examples"]
        assert "metadata-readout.js" in names
        response = client.get("/examples/toggle-state.js")
        assert response.status_code == 200
        assert b"function toggleState" in response.data
        assert client.get("/examples/missing.js").status_code == 404


class TestUpload:
    def test_upload_detects_svg(self, client):
        response = client.post("/upload", data={"file": (io.BytesIO(b"<svg/>"), "mixer.svg")},
                               content_type="multipart/form-data")
        assert response.status_code == 200
        assert response.get_json()["type"] == "svg"
        assert "mixer.svg" in client.get("/resources").get_json()["svg"]

    def test_upload_without_file(self, client):
        response = client.post("/upload", data={}, content_type="multipart/form-data")
        assert response.status_code == 400
        assert response.get_json()["error"] == "No file uploaded"

    def test_upload_unsupported_type(self, client):
        response = client.post("/upload", data={"file": (io.BytesIO(b"hello"), "notes.txt")},
                               content_type="multipart/form-data")
        assert response.status_code == 400

    def test_typed_multi_upload(self, client):
        response = client.post(
            "/upload/script",
            data={"files": [(io.BytesIO(b"// a"), "a.js"), (io.BytesIO(b"// b"), "b.js")]},
            content_type="multipart/form-data",
        )
        assert response.status_code == 200
        assert response.get_json()["files"] == ["a.js", "b.js"]

    def test_typed_upload_without_files(self, client):
        response = client.post("/upload/script", data={}, content_type="multipart/form-data")
        assert response.status_code == 400


class TestGenerate:
    def test_generate_and_download(self, client):
        response = client.post("/generate", json={
            "svgFiles": ["tank.svg"],
            "scriptFiles": ["tank.js", "missing.js"],
            "title": "Plant",
            "bindings": {"tank-title": {"script": "tankHover", "event": "mouseover"}},
        })
        assert response.status_code == 200
        data = response.get_json()
        assert data["success"] is True
        assert data["missing"] == {"svg": [], "script": ["missing.js"]}

        download = client.get(data["downloadUrl"])
        assert download.status_code == 200
        assert "attachment" in download.headers["Content-Disposition"]
        assert b'data-script="tankHover"' in download.data

    def test_generate_from_form_fields(self, client):
        response = client.post("/generate", data={"svgFiles": '["pump.svg"]', "title": "Pump"})
        assert response.status_code == 200
        assert response.get_json()["file"].endswith(".html")

    def test_generate_without_svg(self, client):
        response = client.post("/generate", json={"scriptFiles": ["tank.js"]})
        assert response.status_code == 400
        assert response.get_json()["error"] == "No SVG files selected"

    def test_generate_invalid_svg(self, client):
        client.post("/save/svg/broken.svg", json={"content": "<svg><g></svg>"})
        response = client.post("/generate", json={"svgFiles": ["broken.svg"]})
        assert response.status_code == 400
        assert response.get_json()["success"] is False

    def test_download_missing(self, client):
        assert client.get("/download/interactive-missing.html").status_code == 404
