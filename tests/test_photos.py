"""
Photo manifest: metadata rows plus best-effort release of stored objects.
"""
from uuid import uuid4

import pytest

from remedhub.errors import InvalidTransition, NotFoundError, StorageReleaseWarning, ValidationError
from remedhub.models.models import JobCompletionPhoto
from remedhub.services import checklist, photos, workflow
from remedhub.storage.local_provider import LocalStorageProvider


def _path(job, name):
    return f"{job.organization_id}/{job.id}/{name}"


class TestAddAndList:
    def test_add_defaults_to_during(self, db, crew, job):
        photo = photos.add_photo(db, crew, job.id, _path(job, "1.jpg"), caption="North wall", image_width=4032)
        assert photo.photo_type == "during"
        assert photo.uploaded_by == crew.id
        assert photo.caption == "North wall"
        assert photo.image_width == 4032

    def test_filter_by_type(self, db, crew, job):
        photos.add_photo(db, crew, job.id, _path(job, "b.jpg"), photo_type="before")
        photos.add_photo(db, crew, job.id, _path(job, "a1.jpg"), photo_type="after")
        photos.add_photo(db, crew, job.id, _path(job, "a2.jpg"), photo_type="after")

        assert len(photos.list_photos(db, job.id, crew)) == 3
        assert {p.storage_path for p in photos.list_photos(db, job.id, crew, photo_type="after")} == {
            _path(job, "a1.jpg"), _path(job, "a2.jpg"),
        }

    def test_unknown_photo_type(self, db, crew, job):
        with pytest.raises(ValidationError):
            photos.add_photo(db, crew, job.id, _path(job, "x.jpg"), photo_type="selfie")

    def test_unknown_metadata(self, db, crew, job):
        with pytest.raises(ValidationError):
            photos.add_photo(db, crew, job.id, _path(job, "x.jpg"), exif_blob="...")

    @pytest.mark.parametrize("suffix", ["../../../etc/passwd", "a/../../b.jpg", "./1.jpg", "sub//1.jpg", "a\\b.jpg"])
    def test_key_cannot_climb_out_of_job_folder(self, db, crew, job, suffix):
        with pytest.raises(ValidationError) as exc:
            photos.add_photo(db, crew, job.id, _path(job, suffix))
        assert exc.value.field == "storage_path"
        assert db.query(JobCompletionPhoto).count() == 0

    def test_key_must_sit_under_the_job_folder(self, db, crew, job, make_job, tmp_path):
        other_job = make_job()
        for key in (_path(other_job, "1.jpg"), "1.jpg", "..../" * 3 + str(tmp_path / "victim.txt")):
            with pytest.raises(ValidationError):
                photos.add_photo(db, crew, job.id, key)
        assert db.query(JobCompletionPhoto).count() == 0

    def test_update_caption_and_type(self, db, crew, job):
        photo = photos.add_photo(db, crew, job.id, _path(job, "1.jpg"))
        photo = photos.update_photo(db, crew, photo.id, photo_type="issue", caption="Damaged subfloor")
        assert photo.photo_type == "issue"
        assert photo.caption == "Damaged subfloor"


class TestRemove:
    def test_releases_stored_object(self, db, crew, job, storage):
        photo = photos.add_photo(db, crew, job.id, _path(job, "1.jpg"))
        photo_id = photo.id

        result = photos.remove_photo(db, crew, photo_id, storage)

        assert result.photo_id == photo_id
        assert result.warnings == []
        assert storage.deleted == [_path(job, "1.jpg")]
        assert db.query(JobCompletionPhoto).count() == 0

    def test_storage_failure_becomes_a_warning(self, db, crew, job, failing_storage):
        photo_id = photos.add_photo(db, crew, job.id, _path(job, "1.jpg")).id

        result = photos.remove_photo(db, crew, photo_id, failing_storage)

        assert db.query(JobCompletionPhoto).filter_by(id=photo_id).first() is None
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert isinstance(warning, StorageReleaseWarning)
        assert warning.storage_path == _path(job, "1.jpg")
        assert warning.to_dict()["warning"] == "STORAGE_RELEASE_FAILED"
        assert failing_storage.attempts == [_path(job, "1.jpg")]

    def test_removes_photo_from_checklist_evidence(self, db, crew, job, storage):
        item = checklist.initialize_checklist(db, job.id, crew)[0]
        keep = photos.add_photo(db, crew, job.id, _path(job, "keep.jpg"))
        drop = photos.add_photo(db, crew, job.id, _path(job, "drop.jpg"))
        keep_id, drop_id = keep.id, drop.id
        checklist.update_checklist_item(db, item.id, crew, evidence_photo_ids=[keep_id, drop_id])

        photos.remove_photo(db, crew, drop_id, storage)

        db.refresh(item)
        assert item.evidence_photo_ids == [str(keep_id)]

    def test_unknown_photo(self, db, crew, storage):
        with pytest.raises(NotFoundError):
            photos.remove_photo(db, crew, uuid4(), storage)
        assert storage.deleted == []

    def test_locked_after_approval(self, db, crew, reviewer, job, storage):
        photo_id = photos.add_photo(db, crew, job.id, _path(job, "1.jpg")).id
        workflow.create_completion(db, job.id, crew)
        workflow.submit_completion(db, job.id, crew)
        workflow.approve_completion(db, job.id, reviewer)

        with pytest.raises(InvalidTransition):
            photos.remove_photo(db, crew, photo_id, storage)
        assert storage.deleted == []


class TestLocalStorage:
    def test_delete_removes_file_and_tolerates_missing(self, tmp_path):
        provider = LocalStorageProvider(base_dir=str(tmp_path))
        target = tmp_path / "uploads" / "org" / "job" / "1.jpg"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"\xff\xd8\xff")

        assert provider.exists("org/job/1.jpg")
        provider.delete("org/job/1.jpg")
        assert not target.exists()
        provider.delete("org/job/1.jpg")

    def test_refuses_keys_outside_the_uploads_directory(self, tmp_path):
        victim = tmp_path / "victim.txt"
        victim.write_text("keep me")
        provider = LocalStorageProvider(base_dir=str(tmp_path / "store"))

        for key in ("../../victim.txt", "a/../../../victim.txt"):
            with pytest.raises(ValueError):
                provider.delete(key)
        # dotted names and absolute-looking keys stay inside the uploads directory
        for key in ("..../" * 3 + str(victim), str(victim)):
            provider.delete(key)
        assert victim.read_text() == "keep me"

    def test_out_of_tree_key_becomes_a_release_warning(self, db, crew, job, tmp_path):
        victim = tmp_path / "victim.txt"
        victim.write_text("keep me")
        provider = LocalStorageProvider(base_dir=str(tmp_path / "store"))
        # rows written before keys were validated
        photo = JobCompletionPhoto(
            job_id=job.id, organization_id=job.organization_id,
            storage_path="../../victim.txt", photo_type="during", uploaded_by=crew.id,
        )
        db.add(photo)
        db.commit()

        result = photos.remove_photo(db, crew, photo.id, provider)

        assert len(result.warnings) == 1
        assert victim.exists()


class TestDownloadUrl:
    def test_signed_url_from_storage(self, db, crew, job, storage):
        photo = photos.add_photo(db, crew, job.id, _path(job, "1.jpg"))
        url = photos.photo_download_url(db, crew, photo.id, storage, expires_s=60)
        assert url == f"https://storage.test/{_path(job, '1.jpg')}?se=60"

    def test_missing_local_object(self, db, crew, job, tmp_path):
        provider = LocalStorageProvider(base_dir=str(tmp_path))
        photo = photos.add_photo(db, crew, job.id, _path(job, "gone.jpg"))
        with pytest.raises(NotFoundError):
            photos.photo_download_url(db, crew, photo.id, provider)

    def test_local_url_for_present_object(self, db, crew, job, tmp_path):
        provider = LocalStorageProvider(base_dir=str(tmp_path))
        key = _path(job, "1.jpg")
        target = tmp_path / "uploads" / key
        target.parent.mkdir(parents=True)
        target.write_bytes(b"\xff\xd8\xff")
        photo = photos.add_photo(db, crew, job.id, key)

        url = photos.photo_download_url(db, crew, photo.id, provider)

        assert url.endswith(f"/files/local/{key}")
