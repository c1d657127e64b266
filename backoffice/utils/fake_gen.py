import random
from faker import Faker
from faker.providers import BaseProvider


class GroceryProvider(BaseProvider):
    """
    食品批发专用数据生成器
    生成散装 / 整箱类商品名与供应商名
    """

    # 品类
    goods = [
        '大米', '白砂糖', '面粉', '红扁豆', '鹰嘴豆', '咖啡豆', '绿茶',
        '橄榄油', '番茄酱', '意大利面', '奶粉', '杏仁', '椰枣', '粗麦粉',
    ]

    # 产地 / 品质前缀
    qualities = ['优选', '特级', '有机', '进口', '精制', '农场', '经典']

    # 公司后缀
    company_suffixes = ['食品', '贸易', '粮油', '进出口', '批发', '农产品']

    # 常见包装：(单位类型, 每箱件数, 单件重量)
    packagings = [
        ('kilo', None, None),
        ('carton', 24, '0.5'),
        ('carton', 12, '1'),
        ('paquet', None, '2'),
        ('sac', None, '25'),
    ]

    def grocery_product_name(self):
        """生成商品名"""
        return f"{self.random_element(self.qualities)}{self.random_element(self.goods)}"

    def supplier_company(self):
        """生成供应商名"""
        prefix = self.generator.last_name()
        return f"{prefix}{self.random_element(self.company_suffixes)}"

    def sku_code(self):
        return f"SKU-{self.random_int(10000, 99999)}"

    def packaging(self):
        return random.choice(self.packagings)


# 初始化 Faker 并添加自定义 Provider
fake = Faker('zh_CN')
fake.add_provider(GroceryProvider)
