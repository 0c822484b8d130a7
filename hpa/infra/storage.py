"""
模块职能：
- 课程文件的对象存储（MinIO / S3 兼容）。

主要类型/函数：
- ObjectStorage：put / remove / read_text / presigned_url，桶在首次写入前确保存在
- get_storage()：FastAPI 依赖，进程内单例；测试里用 dependency_overrides 替换

错误：
- 所有 minio.error.S3Error 原样上抛，由服务层转换为业务错误
"""
import os
from datetime import timedelta
from typing import BinaryIO, Optional

from minio import Minio

from hpa.infra.logger import emit

MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "localhost:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "hpa")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "hpa12345")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "hpa")
MINIO_USE_SSL = os.getenv("MINIO_USE_SSL", "false").lower() == "true"


class ObjectStorage:
    def __init__(self, client: Minio, bucket: str):
        self.client = client
        self.bucket = bucket
        self._bucket_ready = False

    def ensure_bucket(self):
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(bucket_name=self.bucket):
            self.client.make_bucket(bucket_name=self.bucket)
            emit("storage_bucket_created", bucket=self.bucket)
        self._bucket_ready = True

    def put(self, key: str, data: BinaryIO, length: int, content_type: str):
        self.ensure_bucket()
        self.client.put_object(
            bucket_name=self.bucket, object_name=key, data=data, length=length,
            content_type=content_type,
        )
        emit("storage_put", key=key, size=length)

    def remove(self, key: str):
        self.client.remove_object(bucket_name=self.bucket, object_name=key)
        emit("storage_remove", key=key)

    def read_text(self, key: str) -> str:
        resp = self.client.get_object(bucket_name=self.bucket, object_name=key)
        try:
            return resp.read().decode("utf-8")
        finally:
            resp.close()
            resp.release_conn()

    def presigned_url(self, key: str, expires: timedelta = timedelta(hours=1)) -> str:
        return self.client.presigned_get_object(
            bucket_name=self.bucket, object_name=key, expires=expires,
        )


_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        client = Minio(
            endpoint=MINIO_ENDPOINT,
            access_key=MINIO_ACCESS_KEY,
            secret_key=MINIO_SECRET_KEY,
            secure=MINIO_USE_SSL,
        )
        _storage = ObjectStorage(client, MINIO_BUCKET)
    return _storage
